"""Audio helpers."""

from __future__ import annotations

import io
import threading
import wave
from typing import Optional

import numpy as np

WAV_MEDIA_TYPE = "audio/wav"

MEDIA_TYPE_EXTENSIONS = {
    "audio/wav": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
}


def _full_scale_for(dtype: np.dtype) -> tuple[float, float]:
    if dtype == np.int16:
        return 0.0, 32768.0
    if dtype == np.uint8:
        return 128.0, 128.0
    if dtype == np.int32:
        return 0.0, 2147483648.0
    return 0.0, 1.0


def rms_envelope(
    block,
    center: Optional[float] = None,
    full_scale: Optional[float] = None,
) -> float:
    """Normalized RMS amplitude of one block of samples.

    Integer blocks are scaled by their full-scale value so the result lands
    roughly in [0, 1]; unsigned 8-bit blocks are centered at 128.
    """
    data = np.asarray(block)
    default_center, default_scale = _full_scale_for(data.dtype)
    if center is None:
        center = default_center
    if full_scale is None:
        full_scale = default_scale
    if data.size == 0:
        return 0.0
    centered = (data.astype(np.float64) - center) / full_scale
    return float(np.sqrt(np.mean(centered * centered)))


def extension_for(media_type: str) -> str:
    base = (media_type or "").split(";", 1)[0].strip().lower()
    return MEDIA_TYPE_EXTENSIONS.get(base, ".bin")


class WavRecording:
    """In-memory 16-bit PCM WAV writer fed block by block."""

    media_type = WAV_MEDIA_TYPE

    def __init__(self, sample_rate_hz: int = 44100, channels: int = 1) -> None:
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.frames_written = 0
        self._buffer = io.BytesIO()
        self._lock = threading.Lock()
        self._payload: Optional[bytes] = None
        self._handle = wave.open(self._buffer, "wb")
        self._handle.setnchannels(channels)
        self._handle.setsampwidth(2)
        self._handle.setframerate(sample_rate_hz)

    def write(self, block) -> None:
        data = np.asarray(block)
        if data.dtype != np.int16:
            data = data.astype(np.int16)
        with self._lock:
            if self._payload is not None:
                return
            self._handle.writeframes(data.tobytes())
            self.frames_written += data.shape[0] if data.ndim else 0

    def finalize(self) -> bytes:
        with self._lock:
            if self._payload is None:
                self._handle.close()
                self._payload = self._buffer.getvalue()
            return self._payload
