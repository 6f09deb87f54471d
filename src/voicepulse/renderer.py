"""Plain-text rendering for the terminal."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Tuple

from .models import CHANNEL_NAMES, AnonymizedReport, IndicatorVector, Session


def _percent(value: float) -> int:
    return int(round((value or 0.0) * 100))


def _label(name: str) -> str:
    return name.capitalize()


def _local_time(stamp: str) -> str:
    if not stamp:
        return "-"
    try:
        parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
    except ValueError:
        return stamp
    return parsed.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def top_channels(vector: Iterable[float], count: int = 3) -> List[Tuple[str, int]]:
    """Strongest channels first; ties keep channel order."""
    ranked = sorted(
        enumerate(_percent(v) for v in vector),
        key=lambda pair: (-pair[1], pair[0]),
    )
    return [(_label(CHANNEL_NAMES[idx]), pct) for idx, pct in ranked[:count]]


def format_highlights(vector: Iterable[float], count: int = 3) -> str:
    top = top_channels(vector, count)
    if not top:
        return "-"
    return " | ".join(f"{name} {pct}%" for name, pct in top)


def render_meter_line(vector: IndicatorVector, elapsed_seconds: float, width: int = 10) -> str:
    cells = []
    for name, value in zip(CHANNEL_NAMES, vector):
        filled = int(round(value * width))
        cells.append(f"{name[:4]} {'#' * filled}{'.' * (width - filled)}")
    mins, secs = divmod(int(elapsed_seconds), 60)
    return f"{mins:02d}:{secs:02d} " + " ".join(cells)


def closing_message(vector: IndicatorVector) -> str:
    first, second = [name for name, _ in top_channels(vector, 2)]
    return (
        f"Thank you for being here. Today you showed {first} and {second} "
        "in a vivid way. Keep your own pace."
    )


def render_session_line(session: Session) -> str:
    subject = session.subject_ref or "Subject (not given)"
    location = session.location_ref or "Location (not given)"
    lines = [
        f"{_local_time(session.created_at)}  {subject} | {location} | "
        f"{session.duration_seconds or 0}s",
        f"  Session {session.session_id}",
        f"  Highlights: {format_highlights(session.final_indicators)}",
    ]
    if session.note:
        lines.append(f"  Note: {' '.join(session.note.split())}")
    return "\n".join(lines)


def render_report_summary(report: AnonymizedReport) -> str:
    header = report.header
    lines: List[str] = []
    lines.append(f"Report: {header.tool or '-'}")
    lines.append(f"Generated: {_local_time(header.generated_at)}")
    if header.reviewer_name or header.reviewer_credential_id:
        lines.append(
            f"Reviewer: {header.reviewer_name or '-'} ({header.reviewer_credential_id or '-'})"
        )
    lines.append(f"Sessions: {report.agg.session_count}")
    lines.append(f"Average duration: {report.agg.avg_duration_seconds}s")
    lines.append(f"Average highlights: {format_highlights(report.agg.avg_final_indicators)}")
    lines.append("")
    if not report.items:
        lines.append("No sessions in this report.")
        return "\n".join(lines) + "\n"
    for item in report.items:
        subject = item.subject_ref or "Subject"
        location = item.location_ref or "Location"
        lines.append(
            f"{_local_time(item.created_at)}  {subject} | {location} | "
            f"{item.duration_seconds}s"
        )
        lines.append(f"  Session {item.session_id}")
        lines.append(f"  Highlights: {format_highlights(item.final_indicators)}")
    return "\n".join(lines) + "\n"
