"""CLI entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG_PATH, Workflow, load_config_or_default
from .errors import CaptureUnavailable, MalformedReportInput, PersistenceFailure
from .logging_utils import get_logger, setup_logging
from .storage import ensure_structure
from .workflows import create_workflow

COMMAND_WORKFLOWS = {
    "devices": Workflow.CAPTURE,
    "capture": Workflow.CAPTURE,
    "sessions": Workflow.REVIEW,
    "note": Workflow.REVIEW,
    "delete": Workflow.REVIEW,
    "export-audio": Workflow.REVIEW,
    "report": Workflow.REVIEW,
    "reviewer": Workflow.REVIEW,
    "ingest": Workflow.INGEST,
}


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Config.")
    common.add_argument("--base-dir", help="Base storage directory.")
    common.add_argument("--debug", action="store_true", help="Debug logging.")

    parser = argparse.ArgumentParser(prog="voicepulse")
    sub = parser.add_subparsers(dest="command")

    devices_cmd = sub.add_parser("devices", parents=[common])
    devices_cmd.add_argument("--match", help="Filter device names by substring.")

    capture_cmd = sub.add_parser("capture", parents=[common])
    capture_cmd.add_argument("--subject", default="", help="Subject reference (not a name).")
    capture_cmd.add_argument("--location", default="", help="Location reference.")
    capture_cmd.add_argument(
        "--duration", type=int, help="Seconds. Omit for manual stop (capped)."
    )
    capture_cmd.add_argument("--device", help="Preferred device name substring.")
    capture_cmd.add_argument("--rate", type=int, help="Sample rate.")

    sub.add_parser("sessions", parents=[common])

    note_cmd = sub.add_parser("note", parents=[common])
    note_cmd.add_argument("session_id")
    note_cmd.add_argument("text", help="Reviewer note; replaces the current one.")

    delete_cmd = sub.add_parser("delete", parents=[common])
    delete_cmd.add_argument("session_id")

    export_cmd = sub.add_parser("export-audio", parents=[common])
    export_cmd.add_argument("session_id")
    export_cmd.add_argument("path", help="Output audio file.")

    report_cmd = sub.add_parser("report", parents=[common])
    report_cmd.add_argument("--out", help="Write the report JSON here.")
    report_cmd.add_argument("--reviewer-name", help="Override reviewer name.")
    report_cmd.add_argument("--credential-id", help="Override reviewer credential.")

    reviewer_cmd = sub.add_parser("reviewer", parents=[common])
    reviewer_cmd.add_argument("--name", required=True, help="Reviewer name.")
    reviewer_cmd.add_argument("--credential-id", default="", help="Credential id.")

    ingest_cmd = sub.add_parser("ingest", parents=[common])
    ingest_cmd.add_argument("path", help="Anonymized report JSON.")

    return parser


def run(args: argparse.Namespace) -> int:
    config = load_config_or_default(args.config)
    if args.base_dir:
        config.base_dir = args.base_dir
    if getattr(args, "device", None):
        config.audio.device_name = args.device
    if getattr(args, "rate", None):
        config.audio.sample_rate_hz = args.rate

    workflow = create_workflow(COMMAND_WORKFLOWS[args.command], config)
    command = args.command
    if command == "devices":
        return workflow.devices(match=args.match)
    if command == "capture":
        return workflow.capture(
            subject_ref=args.subject,
            location_ref=args.location,
            duration=args.duration,
        )
    if command == "sessions":
        return workflow.list_sessions()
    if command == "note":
        return workflow.set_note(args.session_id, args.text)
    if command == "delete":
        return workflow.delete(args.session_id)
    if command == "export-audio":
        return workflow.export_audio(args.session_id, args.path)
    if command == "report":
        return workflow.report(
            out_path=args.out,
            reviewer_name=args.reviewer_name,
            credential_id=args.credential_id,
        )
    if command == "reviewer":
        return workflow.save_reviewer(args.config, args.name, args.credential_id)
    if command == "ingest":
        return workflow.ingest(args.path)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    base_dir = args.base_dir or load_config_or_default(args.config).base_dir
    setup_logging(
        log_dir=ensure_structure(base_dir)["logs"],
        level=logging.DEBUG if args.debug else logging.INFO,
    )
    logger = get_logger()

    try:
        return run(args)
    except CaptureUnavailable as exc:
        logger.error("Capture unavailable: %s", exc)
        print(f"Microphone unavailable: {exc}", file=sys.stderr)
    except PersistenceFailure as exc:
        logger.error("Persistence failure: %s", exc)
        print(f"Storage error: {exc}", file=sys.stderr)
    except MalformedReportInput as exc:
        print(f"Invalid report: {exc}", file=sys.stderr)
    except OSError as exc:
        logger.error("File error: %s", exc)
        print(f"File error: {exc}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
