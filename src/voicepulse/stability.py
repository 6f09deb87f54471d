"""Loudness stability from an exponential running variance."""

from __future__ import annotations

from typing import Optional

from .config import StabilityConfig
from .models import ActivityState, clamp01


class StabilityEstimator:
    def __init__(
        self,
        state: ActivityState,
        config: Optional[StabilityConfig] = None,
    ) -> None:
        self.state = state
        self.config = config or StabilityConfig()

    def reset(self) -> None:
        self.state.running_mean = 0.0
        self.state.running_variance = 0.0

    def score(self) -> float:
        return clamp01(1.0 / (1.0 + self.state.running_variance * self.config.scale))

    def update(self, loudness: float) -> float:
        """Fold one tick of loudness in and return the 0-1 stability score."""
        rate = self.config.rate
        state = self.state
        state.running_mean += (loudness - state.running_mean) * rate
        diff = loudness - state.running_mean
        state.running_variance += (diff * diff - state.running_variance) * rate
        return self.score()
