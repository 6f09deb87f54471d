"""Host workflows: capture, review and report ingest."""

from __future__ import annotations

import os
import sys
import threading
from typing import Optional, TextIO

from .config import Config, Workflow, save_config
from .engine import ActivityEngine
from .errors import PersistenceFailure
from .logging_utils import get_logger
from .models import IndicatorVector
from .recorder import Microphone, SessionRecorder, list_input_devices, run_capture_loop
from .renderer import (
    closing_message,
    render_meter_line,
    render_report_summary,
    render_session_line,
)
from .report import build_report, read_report, write_report
from .storage import AsyncSessionStore, SessionStore, build_report_basename

logger = get_logger()


class BaseWorkflow:
    kind: Workflow

    def __init__(self, config: Config, stream: Optional[TextIO] = None) -> None:
        self.config = config
        self.stream = stream or sys.stdout

    def say(self, text: str = "") -> None:
        print(text, file=self.stream)

    def open_store(self) -> AsyncSessionStore:
        return AsyncSessionStore(SessionStore(self.config.base_dir))


class CaptureWorkflow(BaseWorkflow):
    kind = Workflow.CAPTURE

    def devices(self, match: Optional[str] = None) -> int:
        devices = list_input_devices()
        if match:
            devices = [d for d in devices if match.lower() in d.get("name", "").lower()]
        for device in devices:
            self.say(
                f"[{device.get('index', '?')}] {device.get('name', 'Unknown')} "
                f"(inputs: {device.get('max_input_channels', 0)})"
            )
        return 0

    def _show_tick(self, vector: IndicatorVector, recorder: SessionRecorder) -> None:
        self.stream.write("\r" + render_meter_line(vector, recorder.elapsed_seconds))
        self.stream.flush()

    def capture(
        self,
        subject_ref: str = "",
        location_ref: str = "",
        duration: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
        microphone=None,
    ) -> int:
        audio = self.config.audio
        rec_cfg = self.config.recorder
        engine = ActivityEngine(self.config)
        if microphone is None:
            microphone = Microphone(
                sample_rate_hz=audio.sample_rate_hz,
                channels=audio.channels,
                block_size=audio.block_size,
                device_name=audio.device_name,
            )
        microphone.on_block = engine.feed_block

        max_seconds = rec_cfg.max_seconds
        if duration:
            max_seconds = min(int(duration), max_seconds)

        with self.open_store() as store:
            recorder = SessionRecorder(
                engine,
                store,
                max_seconds=max_seconds,
                summary_mode=rec_cfg.summary_mode,
            )
            microphone.open()
            try:
                recorder.start(microphone, subject_ref, location_ref)
                self.say(f"Recording (up to {max_seconds}s). Press Ctrl-C to finish.")
                session = run_capture_loop(recorder, stop_event, on_tick=self._show_tick)
            finally:
                recorder.stop()
                microphone.close()
                engine.reset()
            self.say()
            if session is None:
                return 0
            try:
                recorder.save_future.result()
            except PersistenceFailure as exc:
                self.say(f"Session {session.session_id} may be lost: {exc}")
                return 1
        self.say(f"Session saved: {session.session_id} ({session.duration_seconds}s)")
        self.say(closing_message(session.final_indicators))
        return 0


class ReviewWorkflow(BaseWorkflow):
    kind = Workflow.REVIEW

    def list_sessions(self) -> int:
        with self.open_store() as store:
            sessions = store.get_all().result()
        if not sessions:
            self.say("No saved sessions yet. Record one with `voicepulse capture`.")
            return 0
        for session in sessions:
            self.say(render_session_line(session))
        return 0

    def set_note(self, session_id: str, note: str) -> int:
        with self.open_store() as store:
            store.update_note(session_id, note).result()
        self.say(f"Note saved for {session_id}")
        return 0

    def delete(self, session_id: str) -> int:
        with self.open_store() as store:
            deleted = store.delete(session_id).result()
        if not deleted:
            self.say(f"Session not found: {session_id}")
            return 1
        self.say(f"Deleted {session_id}")
        return 0

    def export_audio(self, session_id: str, path: str) -> int:
        with self.open_store() as store:
            session = store.get(session_id).result()
        if session is None:
            self.say(f"Session not found: {session_id}")
            return 1
        with open(path, "wb") as handle:
            handle.write(session.audio)
        self.say(f"Wrote {path} ({session.audio_media_type})")
        return 0

    def report(
        self,
        out_path: Optional[str] = None,
        reviewer_name: Optional[str] = None,
        credential_id: Optional[str] = None,
    ) -> int:
        reviewer = self.config.reviewer
        with self.open_store() as store:
            sessions = store.get_all().result()
            paths = store.store.paths
        report = build_report(
            sessions,
            reviewer_name=reviewer_name if reviewer_name is not None else reviewer.name,
            credential_id=credential_id if credential_id is not None else reviewer.credential_id,
        )
        if not out_path:
            out_path = os.path.join(paths["reports"], f"{build_report_basename()}.json")
        write_report(out_path, report)
        logger.info("Report written: %s (%s sessions)", out_path, report.agg.session_count)
        self.say(f"Wrote {out_path} ({report.agg.session_count} sessions)")
        return 0

    def save_reviewer(self, config_path: str, name: str, credential_id: str) -> int:
        self.config.reviewer.name = name.strip()
        self.config.reviewer.credential_id = credential_id.strip()
        save_config(config_path, self.config)
        self.say(f"Reviewer saved to {config_path}")
        return 0


class IngestWorkflow(BaseWorkflow):
    kind = Workflow.INGEST

    def ingest(self, path: str) -> int:
        report = read_report(path)
        self.stream.write(render_report_summary(report))
        return 0


WORKFLOWS = {
    Workflow.CAPTURE: CaptureWorkflow,
    Workflow.REVIEW: ReviewWorkflow,
    Workflow.INGEST: IngestWorkflow,
}


def create_workflow(
    kind: Workflow, config: Config, stream: Optional[TextIO] = None
) -> BaseWorkflow:
    return WORKFLOWS[Workflow(kind)](config, stream=stream)
