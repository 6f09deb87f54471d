"""Session serialization."""

from __future__ import annotations

import json
from typing import Any, Dict

from .models import IndicatorVector, Session

INDICATOR_FIELDS = ("final_indicators", "averaged_indicators", "peak_indicators")


def session_to_dict(session: Session) -> Dict[str, Any]:
    """Plain dict of a session; the audio payload is never included."""
    return {
        "session_id": session.session_id,
        "created_at": session.created_at,
        "duration_seconds": session.duration_seconds,
        "subject_ref": session.subject_ref,
        "location_ref": session.location_ref,
        "final_indicators": session.final_indicators.as_list(),
        "averaged_indicators": session.averaged_indicators.as_list(),
        "peak_indicators": session.peak_indicators.as_list(),
        "audio_media_type": session.audio_media_type,
        "note": session.note,
    }


def session_from_dict(data: Dict[str, Any], audio: bytes = b"") -> Session:
    vectors = {
        name: IndicatorVector.from_iterable(data.get(name) or IndicatorVector.zeros())
        for name in INDICATOR_FIELDS
    }
    return Session(
        session_id=data["session_id"],
        created_at=data.get("created_at", ""),
        duration_seconds=int(data.get("duration_seconds") or 0),
        subject_ref=data.get("subject_ref", "") or "",
        location_ref=data.get("location_ref", "") or "",
        audio=audio,
        audio_media_type=data.get("audio_media_type", "audio/wav"),
        note=data.get("note", "") or "",
        **vectors,
    )


def save_session(path: str, session: Session) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(session_to_dict(session), handle, indent=2)


def load_session(path: str, audio: bytes = b"") -> Session:
    with open(path, "r", encoding="utf-8") as handle:
        return session_from_dict(json.load(handle), audio=audio)
