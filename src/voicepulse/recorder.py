"""Microphone capture and bounded session recording."""

from __future__ import annotations

import enum
import threading
import time
import uuid
from concurrent.futures import Future
from typing import Optional, List, Dict, Any, Callable

from .audio_utils import WavRecording
from .config import SummaryMode
from .engine import ActivityEngine
from .errors import CaptureUnavailable
from .logging_utils import get_logger
from .models import IndicatorVector, Session
from .scoring import IndicatorTracker
from .storage import now_iso

logger = get_logger()


def list_input_devices() -> List[Dict[str, Any]]:
    try:
        import sounddevice as sd
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise CaptureUnavailable("sounddevice is required for device detection.") from exc

    try:
        devices = sd.query_devices()
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise CaptureUnavailable(f"Audio devices unavailable: {exc}") from exc
    return [dict(d) for d in devices if d.get("max_input_channels", 0) > 0]


def select_preferred_device(
    candidates: List[Dict[str, Any]],
    prefer_name: Optional[str] = None,
) -> Dict[str, Any]:
    if not candidates:
        raise CaptureUnavailable("No input devices found.")
    if prefer_name:
        preferred = [
            d for d in candidates if prefer_name.lower() in d.get("name", "").lower()
        ]
        if preferred:
            return preferred[0]
        logger.warning("Input device %r not found, using %s", prefer_name, candidates[0].get("name"))
    return candidates[0]


def find_input_device(prefer_name: Optional[str] = None) -> dict:
    return select_preferred_device(list_input_devices(), prefer_name=prefer_name)


class Microphone:
    """Capture collaborator wrapping a sounddevice input stream.

    Every block goes to ``on_block``; while a recording sink is attached
    the block is also written to it.
    """

    def __init__(
        self,
        sample_rate_hz: int = 44100,
        channels: int = 1,
        block_size: int = 2048,
        device_name: Optional[str] = None,
        on_block: Optional[Callable[[Any], None]] = None,
    ) -> None:
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.block_size = block_size
        self.device_name = device_name
        self.on_block = on_block
        self._stream = None
        self._sink: Optional[WavRecording] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def _callback(self, indata, _frames, _time, status) -> None:
        if status:
            logger.debug("Capture status: %s", status)
        if self.on_block is not None:
            self.on_block(indata)
        with self._lock:
            sink = self._sink
        if sink is not None:
            sink.write(indata.copy())

    def open(self) -> None:
        if self._stream is not None:
            return
        try:
            import sounddevice as sd
        except Exception as exc:  # pragma: no cover - environment-dependent
            raise CaptureUnavailable("sounddevice is required for recording.") from exc

        device = find_input_device(self.device_name)
        max_in = device.get("max_input_channels", 0)
        if max_in and self.channels > max_in:
            logger.info("Adjusting capture channels from %s to %s", self.channels, max_in)
            self.channels = max_in
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate_hz,
                channels=self.channels,
                dtype="int16",
                blocksize=self.block_size,
                device=device.get("index"),
                callback=self._callback,
            )
            stream.start()
        except Exception as exc:
            logger.exception("Capture failed to start")
            raise CaptureUnavailable(f"Could not open microphone: {exc}") from exc
        self._stream = stream
        logger.info("Microphone on: %s", device.get("name"))

    def close(self) -> None:
        if self._stream is None:
            return
        with self._lock:
            if self._sink is not None:
                raise RuntimeError("Stop the recording before turning off the microphone.")
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except Exception:
            logger.exception("Error while closing the input stream")
        logger.info("Microphone off")

    def attach(self, sink: WavRecording) -> None:
        with self._lock:
            self._sink = sink

    def detach(self) -> Optional[WavRecording]:
        with self._lock:
            sink, self._sink = self._sink, None
        return sink


class RecorderState(str, enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


class SessionRecorder:
    """Binds a bounded capture window to the activity engine.

    ``idle -> recording -> stopped``; every ``start`` allocates a new
    session, there is no resume. ``stop`` hands the session to the store
    and keeps the pending write in ``save_future``.
    """

    def __init__(
        self,
        engine: ActivityEngine,
        store=None,
        max_seconds: int = 120,
        summary_mode: str = SummaryMode.TRACKED.value,
    ) -> None:
        self.engine = engine
        self.store = store
        self.max_seconds = max_seconds
        self.summary_mode = summary_mode
        self.state = RecorderState.IDLE
        self.session_id: Optional[str] = None
        self.subject_ref = ""
        self.location_ref = ""
        self.ticks = 0
        self.last_session: Optional[Session] = None
        self.save_future: Optional[Future] = None
        self._capture = None
        self._recording: Optional[WavRecording] = None
        self._tracker = IndicatorTracker(summary_mode)

    @property
    def is_recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    @property
    def elapsed_seconds(self) -> float:
        return round(self.ticks * self.engine.tick_seconds, 6)

    def start(self, capture, subject_ref: str = "", location_ref: str = "") -> str:
        if self.is_recording:
            logger.warning("Recording already in progress: %s", self.session_id)
            return self.session_id
        if not capture.is_open:
            raise CaptureUnavailable("Turn the microphone on before recording.")

        self.session_id = uuid.uuid4().hex
        self.subject_ref = (subject_ref or "").strip()
        self.location_ref = (location_ref or "").strip()
        self.ticks = 0
        self.save_future = None
        self.engine.reset()
        self._tracker = IndicatorTracker(self.summary_mode)
        self._recording = WavRecording(capture.sample_rate_hz, capture.channels)
        self._capture = capture
        capture.attach(self._recording)
        self.state = RecorderState.RECORDING
        logger.info("Recording started: %s (cap %ss)", self.session_id, self.max_seconds)
        return self.session_id

    def tick(self) -> IndicatorVector:
        vector = self.engine.tick()
        if self.is_recording:
            self.ticks += 1
            self._tracker.add(vector)
            if self.elapsed_seconds >= self.max_seconds:
                logger.info("Recording cap reached (%ss), stopping", self.max_seconds)
                self.stop()
        return vector

    def stop(self) -> Optional[Session]:
        if not self.is_recording:
            return None
        self.state = RecorderState.STOPPED
        if self._capture is not None:
            self._capture.detach()
        audio = self._recording.finalize() if self._recording else b""
        media_type = self._recording.media_type if self._recording else "audio/wav"

        final = self.engine.indicators
        averaged, peak = self._tracker.summarize(final)
        session = Session(
            session_id=self.session_id,
            created_at=now_iso(),
            duration_seconds=min(int(self.elapsed_seconds), int(self.max_seconds)),
            subject_ref=self.subject_ref,
            location_ref=self.location_ref,
            final_indicators=final,
            averaged_indicators=averaged,
            peak_indicators=peak,
            audio=audio,
            audio_media_type=media_type,
        )
        self.last_session = session
        self._capture = None
        self._recording = None
        logger.info(
            "Recording stopped: %s (%ss, %s ticks)",
            session.session_id,
            session.duration_seconds,
            self.ticks,
        )

        if self.store is None:
            logger.warning("No session store configured; session %s is not saved", session.session_id)
        else:
            self.save_future = self._submit_save(session)
            self.save_future.add_done_callback(self._log_save)
        return session

    def _submit_save(self, session: Session) -> Future:
        try:
            result = self.store.put(session)
        except Exception as exc:
            future: Future = Future()
            future.set_exception(exc)
            return future
        if isinstance(result, Future):
            return result
        future = Future()
        future.set_result(result)
        return future

    @staticmethod
    def _log_save(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Session could not be saved: %s", exc, exc_info=exc)


def run_capture_loop(
    recorder: SessionRecorder,
    stop_event: Optional[threading.Event] = None,
    on_tick: Optional[Callable[[IndicatorVector, SessionRecorder], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Optional[Session]:
    """Drive ``recorder.tick`` on its fixed cadence until the recording ends."""
    interval = recorder.engine.tick_seconds
    next_at = clock() + interval
    try:
        while recorder.is_recording:
            if stop_event is not None and stop_event.is_set():
                break
            delay = next_at - clock()
            if delay > 0:
                sleep(delay)
            next_at += interval
            vector = recorder.tick()
            if on_tick is not None:
                on_tick(vector, recorder)
    except KeyboardInterrupt:
        logger.info("Capture interrupted")
    session = recorder.stop()
    return session or recorder.last_session
