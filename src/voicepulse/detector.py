"""Adaptive speech-activity detection over the loudness envelope."""

from __future__ import annotations

from typing import Optional

from .config import DetectorConfig
from .models import ActivityState


class ActivityDetector:
    """Tracks a noise floor and classifies each tick as active or quiet.

    ``observe`` runs at audio-frame rate and only touches
    ``state.loudness_smoothed``. ``tick`` runs on the fixed evaluation
    cadence and owns the floor and the continuity accumulator.

    The floor falls ten times faster than it rises, so a quieter room is
    tracked quickly while speech is not absorbed into the floor.
    """

    def __init__(
        self,
        state: ActivityState,
        config: Optional[DetectorConfig] = None,
    ) -> None:
        self.state = state
        self.config = config or DetectorConfig()

    def reset(self) -> None:
        self.state.loudness_smoothed = 0.0
        self.state.noise_floor = self.config.initial_floor
        self.state.continuity_seconds = 0.0

    def observe(self, rms: float) -> float:
        current = self.state.loudness_smoothed
        smoothed = current + (rms - current) * self.config.smoothing
        # single float store; the tick side only reads it
        self.state.loudness_smoothed = smoothed
        return smoothed

    def adapt_floor(self, loudness: float) -> float:
        cfg = self.config
        floor = self.state.noise_floor
        if loudness < floor:
            floor = max(cfg.floor_min, floor - cfg.floor_fall)
        else:
            floor = min(cfg.floor_max, floor + cfg.floor_rise)
        self.state.noise_floor = floor
        return floor

    def is_active(self, loudness: float) -> bool:
        return loudness > self.state.noise_floor + self.config.margin

    def tick(self, dt: float, loudness: Optional[float] = None) -> bool:
        if loudness is None:
            loudness = self.state.loudness_smoothed
        self.adapt_floor(loudness)
        active = self.is_active(loudness)
        if active:
            self.state.continuity_seconds += dt
        else:
            decayed = self.state.continuity_seconds - dt * self.config.continuity_decay
            self.state.continuity_seconds = max(0.0, decayed)
        return active
