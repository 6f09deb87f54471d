"""Activity engine: envelope -> detector/stability -> score vector."""

from __future__ import annotations

from typing import Optional

from .audio_utils import rms_envelope
from .config import Config
from .detector import ActivityDetector
from .models import ActivityState, IndicatorVector
from .scoring import ScoreVectorEngine
from .stability import StabilityEstimator


class ActivityEngine:
    """Owns one ActivityState and the three components that update it.

    ``feed_block``/``feed_level`` are called from the audio callback;
    ``tick`` from the fixed-rate tick handler.
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        config = config or Config()
        self.tick_seconds = config.recorder.tick_seconds
        self.state = ActivityState(noise_floor=config.detector.initial_floor)
        self.detector = ActivityDetector(self.state, config.detector)
        self.stability = StabilityEstimator(self.state, config.stability)
        self.scorer = ScoreVectorEngine(self.state, config.scoring)
        self.last_active = False

    def reset(self) -> None:
        self.detector.reset()
        self.stability.reset()
        self.scorer.reset()
        self.last_active = False

    def feed_level(self, rms: float) -> float:
        return self.detector.observe(rms)

    def feed_block(self, block) -> float:
        return self.feed_level(rms_envelope(block))

    @property
    def indicators(self) -> IndicatorVector:
        return self.state.indicators

    def tick(self) -> IndicatorVector:
        loudness = self.state.loudness_smoothed
        active = self.detector.tick(self.tick_seconds, loudness)
        stability = self.stability.update(loudness)
        self.last_active = active
        return self.scorer.step(active, loudness, stability)
