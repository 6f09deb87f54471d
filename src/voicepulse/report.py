"""Anonymized report building, serialization and parsing."""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import MalformedReportInput
from .logging_utils import get_logger
from .models import (
    CHANNEL_COUNT,
    AnonymizedReport,
    IndicatorVector,
    ReportAggregate,
    ReportHeader,
    ReportItem,
    Session,
)
from .storage import now_iso

logger = get_logger()

TOOL_NAME = "VoicePulse"
ANONYMIZATION_NOTE = "Anonymized report: no audio and no personal identification."


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def build_report(
    sessions: Iterable[Session],
    reviewer_name: str = "",
    credential_id: str = "",
    generated_at: Optional[str] = None,
) -> AnonymizedReport:
    """Strip audio from ``sessions`` and aggregate their final indicators."""
    items = [
        ReportItem(
            session_id=s.session_id,
            created_at=s.created_at,
            duration_seconds=int(s.duration_seconds or 0),
            subject_ref=s.subject_ref or "",
            location_ref=s.location_ref or "",
            final_indicators=IndicatorVector.from_iterable(s.final_indicators),
            averaged_indicators=IndicatorVector.from_iterable(s.averaged_indicators),
            peak_indicators=IndicatorVector.from_iterable(s.peak_indicators),
        )
        for s in sessions
    ]

    n = len(items) or 1
    avg_final = IndicatorVector(
        tuple(
            sum(item.final_indicators[idx] for item in items) / n
            for idx in range(CHANNEL_COUNT)
        )
    )
    agg = ReportAggregate(
        session_count=len(items),
        avg_duration_seconds=_round_half_up(
            sum(item.duration_seconds for item in items) / n
        ),
        avg_final_indicators=avg_final,
    )
    header = ReportHeader(
        tool=TOOL_NAME,
        generated_at=generated_at or now_iso(),
        reviewer_name=reviewer_name or "",
        reviewer_credential_id=credential_id or "",
        note=ANONYMIZATION_NOTE,
    )
    return AnonymizedReport(header=header, agg=agg, items=items)


def _item_to_dict(item: ReportItem) -> Dict[str, Any]:
    return {
        "sessionId": item.session_id,
        "createdAt": item.created_at,
        "durationSeconds": item.duration_seconds,
        "subjectRef": item.subject_ref,
        "locationRef": item.location_ref,
        "finalIndicators": item.final_indicators.as_list(),
        "averagedIndicators": item.averaged_indicators.as_list(),
        "peakIndicators": item.peak_indicators.as_list(),
    }


def report_to_dict(report: AnonymizedReport) -> Dict[str, Any]:
    header = report.header
    return {
        "header": {
            "tool": header.tool,
            "generatedAt": header.generated_at,
            "reviewer": {
                "name": header.reviewer_name,
                "credentialId": header.reviewer_credential_id,
            },
            "note": header.note,
        },
        "agg": {
            "sessionCount": report.agg.session_count,
            "avgDurationSeconds": report.agg.avg_duration_seconds,
            "avgFinalIndicators": report.agg.avg_final_indicators.as_list(),
        },
        "items": [_item_to_dict(item) for item in report.items],
    }


def dump_report(report: AnonymizedReport) -> str:
    return json.dumps(report_to_dict(report), indent=2, allow_nan=False)


def write_report(path: str, report: AnonymizedReport) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(dump_report(report))


# -- parsing -----------------------------------------------------------------


def _require(mapping: Any, key: str, where: str) -> Any:
    if not isinstance(mapping, dict):
        raise MalformedReportInput(f"{where} must be an object.")
    if key not in mapping:
        raise MalformedReportInput(f"{where}.{key} is missing.")
    return mapping[key]


def _text(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise MalformedReportInput(f"{where} must be a string.")
    return value


def _number(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedReportInput(f"{where} must be a number.")
    try:
        finite = math.isfinite(value)
    except OverflowError as exc:
        raise MalformedReportInput(f"{where} is out of range.") from exc
    if not finite:
        raise MalformedReportInput(f"{where} must be finite.")
    return value


def _count(value: Any, where: str) -> int:
    number = _number(value, where)
    if number < 0 or int(number) != number:
        raise MalformedReportInput(f"{where} must be a non-negative integer.")
    return int(number)


def _vector(value: Any, where: str) -> IndicatorVector:
    if not isinstance(value, list) or len(value) != CHANNEL_COUNT:
        raise MalformedReportInput(f"{where} must be a list of {CHANNEL_COUNT} numbers.")
    numbers = [_number(v, f"{where}[{i}]") for i, v in enumerate(value)]
    for i, v in enumerate(numbers):
        if v < 0 or v > 1:
            raise MalformedReportInput(f"{where}[{i}] must be between 0 and 1.")
    return IndicatorVector(tuple(float(v) for v in numbers))


def _parse_item(raw: Any, where: str) -> ReportItem:
    if not isinstance(raw, dict):
        raise MalformedReportInput(f"{where} must be an object.")
    if "audio" in raw:
        raise MalformedReportInput(f"{where} must not carry audio.")
    return ReportItem(
        session_id=_text(_require(raw, "sessionId", where), f"{where}.sessionId"),
        created_at=_text(_require(raw, "createdAt", where), f"{where}.createdAt"),
        duration_seconds=_count(
            _require(raw, "durationSeconds", where), f"{where}.durationSeconds"
        ),
        subject_ref=_text(_require(raw, "subjectRef", where), f"{where}.subjectRef"),
        location_ref=_text(_require(raw, "locationRef", where), f"{where}.locationRef"),
        final_indicators=_vector(
            _require(raw, "finalIndicators", where), f"{where}.finalIndicators"
        ),
        averaged_indicators=_vector(
            _require(raw, "averagedIndicators", where), f"{where}.averagedIndicators"
        ),
        peak_indicators=_vector(
            _require(raw, "peakIndicators", where), f"{where}.peakIndicators"
        ),
    )


def report_from_dict(data: Any) -> AnonymizedReport:
    raw_header = _require(data, "header", "report")
    raw_reviewer = _require(raw_header, "reviewer", "header")
    generated_at = _text(_require(raw_header, "generatedAt", "header"), "header.generatedAt")
    try:
        datetime.fromisoformat(generated_at.replace("Z", "+00:00"))
    except ValueError as exc:
        raise MalformedReportInput("header.generatedAt is not an ISO-8601 timestamp.") from exc
    header = ReportHeader(
        tool=_text(_require(raw_header, "tool", "header"), "header.tool"),
        generated_at=generated_at,
        reviewer_name=_text(_require(raw_reviewer, "name", "header.reviewer"), "header.reviewer.name"),
        reviewer_credential_id=_text(
            _require(raw_reviewer, "credentialId", "header.reviewer"),
            "header.reviewer.credentialId",
        ),
        note=_text(raw_header.get("note", ""), "header.note"),
    )

    raw_agg = _require(data, "agg", "report")
    agg = ReportAggregate(
        session_count=_count(_require(raw_agg, "sessionCount", "agg"), "agg.sessionCount"),
        avg_duration_seconds=_count(
            _require(raw_agg, "avgDurationSeconds", "agg"), "agg.avgDurationSeconds"
        ),
        avg_final_indicators=_vector(
            _require(raw_agg, "avgFinalIndicators", "agg"), "agg.avgFinalIndicators"
        ),
    )

    raw_items = _require(data, "items", "report")
    if not isinstance(raw_items, list):
        raise MalformedReportInput("report.items must be a list.")
    items: List[ReportItem] = [
        _parse_item(raw, f"items[{idx}]") for idx, raw in enumerate(raw_items)
    ]
    if agg.session_count != len(items):
        raise MalformedReportInput(
            f"agg.sessionCount is {agg.session_count} but the report has {len(items)} items."
        )
    return AnonymizedReport(header=header, agg=agg, items=items)


def parse_report(text: Union[str, bytes]) -> AnonymizedReport:
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.warning("Report rejected: not UTF-8 (%s)", exc)
            raise MalformedReportInput("Report is not valid UTF-8 text.") from exc
    try:
        data = json.loads(text or "")
    except ValueError as exc:
        logger.warning("Report rejected: invalid JSON (%s)", exc)
        raise MalformedReportInput(
            "Invalid JSON. Check that the whole report was copied."
        ) from exc
    try:
        return report_from_dict(data)
    except MalformedReportInput as exc:
        logger.warning("Report rejected: %s", exc)
        raise


def read_report(path: str) -> AnonymizedReport:
    with open(path, "rb") as handle:
        return parse_report(handle.read())
