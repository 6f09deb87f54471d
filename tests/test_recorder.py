import numpy as np
import pytest

from conftest import FakeCapture, MemoryStore
from voicepulse.config import Config
from voicepulse.engine import ActivityEngine
from voicepulse.errors import CaptureUnavailable, PersistenceFailure
from voicepulse.models import CHANNEL_COUNT
from voicepulse.recorder import (
    Microphone,
    RecorderState,
    SessionRecorder,
    run_capture_loop,
    select_preferred_device,
)
from voicepulse.storage import SessionStore


def _recorder(store=None, max_seconds=120, summary_mode="tracked") -> SessionRecorder:
    return SessionRecorder(
        ActivityEngine(Config()),
        store if store is not None else MemoryStore(),
        max_seconds=max_seconds,
        summary_mode=summary_mode,
    )


def test_stop_before_start_is_noop():
    recorder = _recorder()
    assert recorder.stop() is None
    assert recorder.state is RecorderState.IDLE
    assert recorder.save_future is None


def test_start_twice_keeps_one_session(capture):
    recorder = _recorder()
    first = recorder.start(capture)
    second = recorder.start(capture)
    assert first == second
    assert recorder.is_recording


def test_start_requires_open_microphone():
    recorder = _recorder()
    with pytest.raises(CaptureUnavailable):
        recorder.start(FakeCapture(is_open=False))
    assert recorder.state is RecorderState.IDLE


def test_zero_second_session(capture, memory_store):
    recorder = _recorder(memory_store)
    recorder.engine.state.levels = [0.7] * CHANNEL_COUNT
    session_id = recorder.start(capture, " RT-7 ", "Room B")
    session = recorder.stop()

    assert session.session_id == session_id
    assert session.duration_seconds == 0
    assert session.final_indicators.as_list() == [0.0] * CHANNEL_COUNT
    assert session.averaged_indicators.as_list() == [0.0] * CHANNEL_COUNT
    assert session.peak_indicators.as_list() == [0.0] * CHANNEL_COUNT
    assert session.subject_ref == "RT-7"
    assert session.location_ref == "Room B"
    assert session.audio.startswith(b"RIFF")
    assert session.note == ""
    assert memory_store.sessions[session_id] is session
    assert recorder.state is RecorderState.STOPPED
    assert capture.sink is None


def test_stop_is_idempotent(capture):
    recorder = _recorder()
    recorder.start(capture)
    assert recorder.stop() is not None
    assert recorder.stop() is None


def test_audio_blocks_reach_the_recording(capture):
    recorder = _recorder()
    recorder.start(capture)
    capture.sink.write(np.ones((800, 1), dtype=np.int16))
    session = recorder.stop()
    assert len(session.audio) == 44 + 800 * 2


def test_auto_stop_at_cap(capture, memory_store):
    recorder = _recorder(memory_store, max_seconds=2)
    recorder.start(capture)
    for _ in range(10):
        recorder.engine.feed_level(0.3)
        recorder.tick()
    assert recorder.state is RecorderState.STOPPED
    session = recorder.last_session
    assert session.duration_seconds == 2
    assert len(memory_store.sessions) == 1

    recorder.tick()
    assert recorder.ticks == 10
    assert len(memory_store.sessions) == 1


def test_tracked_summary_uses_every_tick(capture):
    recorder = _recorder(max_seconds=60)
    recorder.start(capture)
    for _ in range(20):
        recorder.engine.feed_level(0.3)
        recorder.tick()
    for _ in range(5):
        recorder.engine.feed_level(0.0)
        recorder.tick()
    session = recorder.stop()

    assert session.duration_seconds == 5
    for avg, peak, final in zip(
        session.averaged_indicators, session.peak_indicators, session.final_indicators
    ):
        assert avg <= peak
        assert final <= peak
    assert session.peak_indicators[0] > session.final_indicators[0]


def test_snapshot_summary_derives_from_final(capture):
    recorder = _recorder(summary_mode="snapshot")
    recorder.start(capture)
    for _ in range(10):
        recorder.engine.feed_level(0.3)
        recorder.tick()
    session = recorder.stop()
    final = session.final_indicators.as_list()
    assert session.peak_indicators.as_list() == final
    assert session.averaged_indicators.as_list() == pytest.approx([v * 0.75 for v in final])


def test_persistence_failure_is_reported_not_raised(capture):
    recorder = _recorder(MemoryStore(fail=True))
    recorder.start(capture)
    session = recorder.stop()
    assert session is not None
    assert isinstance(recorder.save_future.exception(), PersistenceFailure)


def test_synchronous_store_is_wrapped_in_a_future(capture, tmp_path):
    recorder = _recorder(SessionStore(str(tmp_path)))
    recorder.start(capture)
    session = recorder.stop()
    assert recorder.save_future.result() is session
    assert SessionStore(str(tmp_path)).get(session.session_id) is not None


def test_synchronous_store_failure_is_reported_not_raised(capture):
    class BrokenStore:
        def put(self, session):
            raise PersistenceFailure("disk full", session.session_id)

    recorder = _recorder(BrokenStore())
    recorder.start(capture)
    session = recorder.stop()
    assert session is not None
    assert isinstance(recorder.save_future.exception(), PersistenceFailure)


def test_stop_without_store_keeps_session(capture):
    recorder = SessionRecorder(ActivityEngine(Config()), None)
    recorder.start(capture)
    session = recorder.stop()
    assert recorder.last_session is session
    assert recorder.save_future is None


def test_new_recording_allocates_new_session(capture):
    recorder = _recorder()
    first = recorder.start(capture)
    recorder.stop()
    second = recorder.start(capture)
    assert first != second


def test_microphone_cannot_close_while_recording(capture):
    recorder = _recorder()
    recorder.start(capture)
    with pytest.raises(RuntimeError):
        capture.close()
    recorder.stop()
    capture.close()
    assert not capture.is_open


def test_run_capture_loop_ticks_until_cap(capture):
    now = [0.0]
    sleeps = []

    def _sleep(seconds):
        sleeps.append(seconds)
        now[0] += seconds

    recorder = _recorder(max_seconds=1)
    recorder.start(capture)
    seen = []
    session = run_capture_loop(
        recorder,
        on_tick=lambda vector, rec: seen.append(rec.ticks),
        sleep=_sleep,
        clock=lambda: now[0],
    )
    assert session.duration_seconds == 1
    assert seen == [1, 2, 3, 4, 5]
    assert sleeps == pytest.approx([0.2] * 5)


def test_run_capture_loop_honours_stop_event(capture):
    import threading

    event = threading.Event()
    event.set()
    recorder = _recorder()
    recorder.start(capture)
    session = run_capture_loop(recorder, stop_event=event, sleep=lambda _s: None)
    assert session.duration_seconds == 0
    assert recorder.state is RecorderState.STOPPED


class _FakeStream:
    def __init__(self):
        self.stopped = False

    def stop(self):
        self.stopped = True

    def close(self):
        pass


def test_microphone_callback_feeds_analysis_and_sink():
    blocks = []
    mic = Microphone(sample_rate_hz=8000, on_block=blocks.append)
    sink = []

    class _Sink:
        def write(self, block):
            sink.append(block)

    mic.attach(_Sink())
    data = np.ones((256, 1), dtype=np.int16)
    mic._callback(data, 256, None, None)
    assert blocks[0] is data
    assert sink[0].shape == (256, 1)

    mic._stream = _FakeStream()
    with pytest.raises(RuntimeError):
        mic.close()
    mic.detach()
    mic.close()
    assert not mic.is_open


def test_select_preferred_device_prefers_name():
    candidates = [
        {"name": "Built-in Mic", "index": 1},
        {"name": "USB Headset Microphone", "index": 2},
    ]
    result = select_preferred_device(candidates, prefer_name="usb headset")
    assert result["name"] == "USB Headset Microphone"


def test_select_preferred_device_falls_back_to_first():
    candidates = [
        {"name": "Built-in Mic", "index": 1},
        {"name": "USB Headset Microphone", "index": 2},
    ]
    assert select_preferred_device(candidates, prefer_name="zoom")["index"] == 1


def test_select_preferred_device_without_devices():
    with pytest.raises(CaptureUnavailable):
        select_preferred_device([])
