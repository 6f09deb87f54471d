"""VoicePulse: live vocal-activity indicators with anonymized session reports."""

__version__ = "0.1.0"
