import io
import json
import threading

from conftest import FakeCapture
from voicepulse.cli import COMMAND_WORKFLOWS, build_parser, main
from voicepulse.config import Config, Workflow, load_config
from voicepulse.models import IndicatorVector, Session
from voicepulse.report import build_report, dump_report
from voicepulse.storage import SessionStore
from voicepulse.workflows import (
    CaptureWorkflow,
    IngestWorkflow,
    ReviewWorkflow,
    create_workflow,
)


def _store_session(base_dir, session_id="s1", duration=10):
    SessionStore(str(base_dir)).put(
        Session(
            session_id=session_id,
            created_at="2026-01-13T10:00:00.000+00:00",
            duration_seconds=duration,
            final_indicators=IndicatorVector((0.4,) * 8),
            averaged_indicators=IndicatorVector((0.3,) * 8),
            peak_indicators=IndicatorVector((0.6,) * 8),
            audio=b"RIFFdata",
        )
    )


def _args(tmp_path, *rest):
    return [*rest, "--base-dir", str(tmp_path), "--config", str(tmp_path / "cfg.yml")]


def test_every_workflow_has_commands():
    assert set(COMMAND_WORKFLOWS.values()) == set(Workflow)
    args = build_parser().parse_args(["capture", "--duration", "5"])
    assert COMMAND_WORKFLOWS[args.command] is Workflow.CAPTURE
    assert args.duration == 5


def test_create_workflow_picks_variant():
    assert isinstance(create_workflow(Workflow.CAPTURE, Config()), CaptureWorkflow)
    assert isinstance(create_workflow(Workflow.REVIEW, Config()), ReviewWorkflow)
    assert isinstance(create_workflow("ingest", Config()), IngestWorkflow)


def test_ingest_prints_summary(tmp_path, capsys):
    report_path = tmp_path / "report.json"
    report_path.write_text(dump_report(build_report([])), encoding="utf-8")
    assert main(_args(tmp_path, "ingest", str(report_path))) == 0
    assert "Sessions: 0" in capsys.readouterr().out


def test_ingest_rejects_malformed_report(tmp_path, capsys):
    report_path = tmp_path / "report.json"
    report_path.write_text('{"items": []}', encoding="utf-8")
    assert main(_args(tmp_path, "ingest", str(report_path))) == 1
    assert "Invalid report" in capsys.readouterr().err


def test_ingest_rejects_report_that_is_not_utf8(tmp_path, capsys):
    report_path = tmp_path / "report.json"
    report_path.write_bytes(b'{"header": "\xff\xfe"}')
    assert main(_args(tmp_path, "ingest", str(report_path))) == 1
    assert "not valid UTF-8" in capsys.readouterr().err


def test_ingest_missing_file(tmp_path, capsys):
    assert main(_args(tmp_path, "ingest", str(tmp_path / "none.json"))) == 1
    assert "File error" in capsys.readouterr().err


def test_report_command_writes_anonymized_json(tmp_path):
    _store_session(tmp_path, "s1", 10)
    _store_session(tmp_path, "s2", 20)
    out_path = tmp_path / "out.json"
    code = main(
        _args(tmp_path, "report", "--out", str(out_path), "--reviewer-name", "Dr. R")
    )
    assert code == 0
    document = json.loads(out_path.read_text(encoding="utf-8"))
    assert document["agg"]["sessionCount"] == 2
    assert document["agg"]["avgDurationSeconds"] == 15
    assert document["header"]["reviewer"]["name"] == "Dr. R"
    assert all("audio" not in item for item in document["items"])


def test_sessions_note_export_and_delete(tmp_path, capsys):
    _store_session(tmp_path)
    assert main(_args(tmp_path, "note", "s1", "Steady voice")) == 0
    assert main(_args(tmp_path, "sessions")) == 0
    assert "Note: Steady voice" in capsys.readouterr().out

    audio_path = tmp_path / "s1.wav"
    assert main(_args(tmp_path, "export-audio", "s1", str(audio_path))) == 0
    assert audio_path.read_bytes() == b"RIFFdata"

    assert main(_args(tmp_path, "delete", "s1")) == 0
    assert main(_args(tmp_path, "delete", "s1")) == 1


def test_note_on_missing_session_is_storage_error(tmp_path, capsys):
    assert main(_args(tmp_path, "note", "ghost", "x")) == 1
    assert "Storage error" in capsys.readouterr().err


def test_reviewer_command_saves_identity(tmp_path):
    assert main(_args(tmp_path, "reviewer", "--name", "Dr. R", "--credential-id", "C-1")) == 0
    saved = load_config(str(tmp_path / "cfg.yml"))
    assert saved.reviewer.name == "Dr. R"
    assert saved.reviewer.credential_id == "C-1"


def test_capture_workflow_records_and_saves(tmp_path):
    config = Config(base_dir=str(tmp_path))
    config.recorder.tick_seconds = 0.05
    stream = io.StringIO()
    microphone = FakeCapture(is_open=False)
    workflow = CaptureWorkflow(config, stream=stream)

    code = workflow.capture(subject_ref="RT-9", duration=1, microphone=microphone)

    assert code == 0
    assert microphone.opened == 1
    assert microphone.closed == 1
    assert microphone.on_block is not None
    sessions = SessionStore(str(tmp_path)).get_all()
    assert len(sessions) == 1
    assert sessions[0].duration_seconds == 1
    assert sessions[0].subject_ref == "RT-9"
    assert "Session saved" in stream.getvalue()


def test_capture_workflow_stops_on_event(tmp_path):
    config = Config(base_dir=str(tmp_path))
    event = threading.Event()
    event.set()
    workflow = CaptureWorkflow(config, stream=io.StringIO())
    assert workflow.capture(stop_event=event, microphone=FakeCapture(is_open=False)) == 0
    assert SessionStore(str(tmp_path)).get_all()[0].duration_seconds == 0
