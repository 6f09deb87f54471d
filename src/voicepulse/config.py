"""Configuration handling."""

from __future__ import annotations

import enum
import os
from dataclasses import asdict, dataclass, field
from typing import Optional
import yaml

DEFAULT_CONFIG_PATH = "voicepulse_config.yml"


class Workflow(str, enum.Enum):
    CAPTURE = "capture"
    REVIEW = "review"
    INGEST = "ingest"


class SummaryMode(str, enum.Enum):
    TRACKED = "tracked"
    SNAPSHOT = "snapshot"


@dataclass
class AudioConfig:
    sample_rate_hz: int = 44100
    channels: int = 1
    block_size: int = 2048
    device_name: Optional[str] = None


@dataclass
class DetectorConfig:
    smoothing: float = 0.25
    initial_floor: float = 0.015
    floor_min: float = 0.008
    floor_max: float = 0.05
    floor_fall: float = 0.002
    floor_rise: float = 0.0002
    margin: float = 0.010
    continuity_decay: float = 0.30


@dataclass
class StabilityConfig:
    rate: float = 0.08
    scale: float = 900.0


@dataclass
class ScoringConfig:
    attack: float = 0.20
    release: float = 0.055
    continuity_saturation_s: float = 12.0
    energy_span: float = 0.12


@dataclass
class RecorderConfig:
    tick_seconds: float = 0.2
    max_seconds: int = 120
    summary_mode: str = SummaryMode.TRACKED.value


@dataclass
class ReviewerConfig:
    name: str = ""
    credential_id: str = ""


@dataclass
class Config:
    base_dir: str = ""
    audio: AudioConfig = field(default_factory=AudioConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    recorder: RecorderConfig = field(default_factory=RecorderConfig)
    reviewer: ReviewerConfig = field(default_factory=ReviewerConfig)


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    recorder = RecorderConfig(**data.get("recorder", {}))
    SummaryMode(recorder.summary_mode)

    return Config(
        base_dir=data.get("base_dir", "") or "",
        audio=AudioConfig(**data.get("audio", {})),
        detector=DetectorConfig(**data.get("detector", {})),
        stability=StabilityConfig(**data.get("stability", {})),
        scoring=ScoringConfig(**data.get("scoring", {})),
        recorder=recorder,
        reviewer=ReviewerConfig(**data.get("reviewer", {})),
    )


def load_config_or_default(path: Optional[str]) -> Config:
    if path and os.path.exists(path):
        return load_config(path)
    return Config()


def save_config(path: str, config: Config) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(asdict(config), handle, sort_keys=False)
