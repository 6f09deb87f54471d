"""Error kinds surfaced to the calling layer."""

from __future__ import annotations

from typing import Optional


class VoicePulseError(Exception):
    """Base class for recoverable VoicePulse errors."""


class CaptureUnavailable(VoicePulseError, RuntimeError):
    """Microphone missing, permission denied, or audio backend absent."""


class PersistenceFailure(VoicePulseError, RuntimeError):
    def __init__(self, message: str, session_id: Optional[str] = None) -> None:
        self.session_id = session_id
        super().__init__(message)


class MalformedReportInput(VoicePulseError, ValueError):
    """Report document does not match the expected shape."""
