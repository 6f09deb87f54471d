"""Shared fakes for capture and storage."""

from concurrent.futures import Future

import pytest

from voicepulse.errors import PersistenceFailure


class FakeCapture:
    """Stands in for Microphone without touching PortAudio."""

    def __init__(self, sample_rate_hz=8000, channels=1, is_open=True):
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.is_open = is_open
        self.on_block = None
        self.sink = None
        self.opened = 0
        self.closed = 0

    def open(self):
        self.opened += 1
        self.is_open = True

    def close(self):
        if self.sink is not None:
            raise RuntimeError("Stop the recording before turning off the microphone.")
        self.closed += 1
        self.is_open = False

    def attach(self, sink):
        self.sink = sink

    def detach(self):
        sink, self.sink = self.sink, None
        return sink


class MemoryStore:
    def __init__(self, fail=False):
        self.fail = fail
        self.sessions = {}

    def put(self, session):
        future = Future()
        if self.fail:
            future.set_exception(PersistenceFailure("disk full", session.session_id))
        else:
            self.sessions[session.session_id] = session
            future.set_result(session)
        return future


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def memory_store():
    return MemoryStore()
