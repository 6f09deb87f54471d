"""Score vector engine: eight indicator channels with attack/release."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import ScoringConfig, SummaryMode
from .models import CHANNEL_COUNT, ActivityState, IndicatorVector, clamp01


@dataclass(frozen=True)
class ChannelBlend:
    name: str
    bias: float = 0.0
    energy: float = 0.0
    stability: float = 0.0
    continuity: float = 0.0

    def target(self, energy: float, stability: float, continuity: float) -> float:
        return clamp01(
            self.bias
            + self.energy * energy
            + self.stability * stability
            + self.continuity * continuity
        )


# Order matches CHANNEL_NAMES.
CHANNEL_BLENDS: Tuple[ChannelBlend, ...] = (
    ChannelBlend("energy", energy=1.0),
    ChannelBlend("constancy", stability=0.55, continuity=0.45),
    ChannelBlend("clarity", energy=0.45, stability=0.55),
    ChannelBlend("rhythm", bias=0.25, continuity=0.75),
    ChannelBlend("focus", bias=0.30, continuity=0.70),
    ChannelBlend("expansion", continuity=1.0),
    ChannelBlend("motivation", energy=0.50, continuity=0.50),
    ChannelBlend("stability", stability=0.65, continuity=0.35),
)


class ScoreVectorEngine:
    """Integrates each channel toward its target.

    Rising uses an exponential attack; falling is a linear release that
    starts on the first quiet tick and stops at zero.
    """

    def __init__(
        self,
        state: ActivityState,
        config: Optional[ScoringConfig] = None,
    ) -> None:
        self.state = state
        self.config = config or ScoringConfig()

    def reset(self) -> None:
        self.state.levels = [0.0] * CHANNEL_COUNT

    def continuity_factor(self) -> float:
        return clamp01(self.state.continuity_seconds / self.config.continuity_saturation_s)

    def energy_factor(self, loudness: float) -> float:
        return clamp01((loudness - self.state.noise_floor) / self.config.energy_span)

    def targets(self, active: bool, loudness: float, stability: float) -> List[float]:
        if not active:
            return [0.0] * CHANNEL_COUNT
        energy = self.energy_factor(loudness)
        cont = self.continuity_factor()
        stab = clamp01(stability)
        return [blend.target(energy, stab, cont) for blend in CHANNEL_BLENDS]

    def step(self, active: bool, loudness: float, stability: float) -> IndicatorVector:
        targets = self.targets(active, loudness, stability)
        attack = self.config.attack
        release = self.config.release
        levels = self.state.levels
        for idx, target in enumerate(targets):
            if active:
                levels[idx] = clamp01(levels[idx] + (target - levels[idx]) * attack)
            else:
                levels[idx] = max(0.0, levels[idx] - release)
        return self.state.indicators


class IndicatorTracker:
    """Per-recording average and peak of the emitted vectors."""

    def __init__(self, mode: str = SummaryMode.TRACKED.value) -> None:
        self.mode = SummaryMode(mode)
        self.ticks = 0
        self._sums = [0.0] * CHANNEL_COUNT
        self._peaks = [0.0] * CHANNEL_COUNT

    def add(self, vector: IndicatorVector) -> None:
        self.ticks += 1
        for idx, value in enumerate(vector):
            self._sums[idx] += value
            if value > self._peaks[idx]:
                self._peaks[idx] = value

    def summarize(self, final: IndicatorVector) -> Tuple[IndicatorVector, IndicatorVector]:
        """Return ``(averaged, peak)`` for a recording ending at ``final``."""
        if self.mode is SummaryMode.SNAPSHOT:
            averaged = IndicatorVector(tuple(v * 0.75 for v in final))
            return averaged, final
        if not self.ticks:
            return IndicatorVector.zeros(), IndicatorVector.zeros()
        averaged = IndicatorVector(tuple(s / self.ticks for s in self._sums))
        return averaged, IndicatorVector(tuple(self._peaks))
