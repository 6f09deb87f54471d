"""Data models for VoicePulse."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Tuple

CHANNEL_NAMES: Tuple[str, ...] = (
    "energy",
    "constancy",
    "clarity",
    "rhythm",
    "focus",
    "expansion",
    "motivation",
    "stability",
)

CHANNEL_COUNT = len(CHANNEL_NAMES)


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class IndicatorVector:
    """Eight named channels, each clamped to [0, 1], in fixed order."""

    values: Tuple[float, ...] = (0.0,) * CHANNEL_COUNT

    def __post_init__(self) -> None:
        values = tuple(clamp01(v) for v in self.values)
        if len(values) != CHANNEL_COUNT:
            raise ValueError(
                f"IndicatorVector needs {CHANNEL_COUNT} values, got {len(values)}."
            )
        object.__setattr__(self, "values", values)

    @classmethod
    def zeros(cls) -> "IndicatorVector":
        return cls()

    @classmethod
    def from_iterable(cls, values: Iterable[float]) -> "IndicatorVector":
        return cls(tuple(values))

    def __iter__(self) -> Iterator[float]:
        return iter(self.values)

    def __len__(self) -> int:
        return CHANNEL_COUNT

    def __getitem__(self, index: int) -> float:
        return self.values[index]

    def as_list(self) -> List[float]:
        return list(self.values)

    def as_dict(self) -> dict:
        return dict(zip(CHANNEL_NAMES, self.values))


@dataclass
class ActivityState:
    """Mutable per-capture state, owned by the tick handler.

    The audio callback only ever writes ``loudness_smoothed``.
    """

    loudness_smoothed: float = 0.0
    noise_floor: float = 0.015
    running_mean: float = 0.0
    running_variance: float = 0.0
    continuity_seconds: float = 0.0
    levels: List[float] = field(default_factory=lambda: [0.0] * CHANNEL_COUNT)

    @property
    def indicators(self) -> IndicatorVector:
        return IndicatorVector(tuple(self.levels))


@dataclass
class Session:
    session_id: str
    created_at: str
    duration_seconds: int
    final_indicators: IndicatorVector
    averaged_indicators: IndicatorVector
    peak_indicators: IndicatorVector
    subject_ref: str = ""
    location_ref: str = ""
    audio: bytes = b""
    audio_media_type: str = "audio/wav"
    note: str = ""


@dataclass
class ReportHeader:
    tool: str
    generated_at: str
    reviewer_name: str = ""
    reviewer_credential_id: str = ""
    note: str = ""


@dataclass
class ReportAggregate:
    session_count: int
    avg_duration_seconds: int
    avg_final_indicators: IndicatorVector


@dataclass
class ReportItem:
    session_id: str
    created_at: str
    duration_seconds: int
    subject_ref: str
    location_ref: str
    final_indicators: IndicatorVector
    averaged_indicators: IndicatorVector
    peak_indicators: IndicatorVector


@dataclass
class AnonymizedReport:
    header: ReportHeader
    agg: ReportAggregate
    items: List[ReportItem] = field(default_factory=list)
