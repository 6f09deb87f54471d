"""Session storage and naming utilities."""

from __future__ import annotations

import os
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .audio_utils import extension_for
from .errors import PersistenceFailure
from .logging_utils import get_logger
from .models import Session
from .session_io import load_session, save_session

logger = get_logger()

SESSION_SUFFIX = ".session.json"
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def timestamp_slug(dt: datetime | None = None) -> str:
    now = dt or datetime.now()
    return now.strftime("%Y-%m-%d")


def build_report_basename(dt: datetime | None = None) -> str:
    now = dt or datetime.now()
    return f"{timestamp_slug(now)}--report-{now.strftime('%H%M%S')}"


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def ensure_structure(base_dir: str) -> dict:
    root = base_dir or os.getcwd()
    paths = {
        "root": root,
        "recordings": os.path.join(root, "Recordings"),
        "sessions": os.path.join(root, "Sessions"),
        "reports": os.path.join(root, "Reports"),
        "logs": os.path.join(root, "Logs"),
    }
    for path in paths.values():
        ensure_dir(path)
    return paths


class SessionStore:
    """Key-value store of sessions on disk, keyed by session id.

    Metadata lives in ``Sessions/<id>.session.json`` and the audio payload
    in ``Recordings/<id><ext>``. Every I/O error surfaces as
    ``PersistenceFailure``.
    """

    def __init__(self, base_dir: str) -> None:
        try:
            self.paths = ensure_structure(base_dir)
        except OSError as exc:
            raise PersistenceFailure(f"Storage unavailable at {base_dir!r}: {exc}") from exc

    def _check_id(self, session_id: str) -> str:
        if not session_id or not _SESSION_ID_RE.match(session_id):
            raise PersistenceFailure(f"Invalid session id: {session_id!r}", session_id)
        return session_id

    def _session_path(self, session_id: str) -> str:
        return os.path.join(self.paths["sessions"], f"{session_id}{SESSION_SUFFIX}")

    def _audio_path(self, session_id: str, media_type: str) -> str:
        return os.path.join(
            self.paths["recordings"], f"{session_id}{extension_for(media_type)}"
        )

    def put(self, session: Session) -> Session:
        session_id = self._check_id(session.session_id)
        audio_path = self._audio_path(session_id, session.audio_media_type)
        session_path = self._session_path(session_id)
        try:
            with open(audio_path, "wb") as handle:
                handle.write(session.audio)
            tmp_path = f"{session_path}.tmp"
            save_session(tmp_path, session)
            os.replace(tmp_path, session_path)
        except OSError as exc:
            raise PersistenceFailure(
                f"Could not write session {session_id}: {exc}", session_id
            ) from exc
        logger.debug("Session stored: %s", session_path)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        session_path = self._session_path(self._check_id(session_id))
        if not os.path.exists(session_path):
            return None
        try:
            session = load_session(session_path)
            audio_path = self._audio_path(session_id, session.audio_media_type)
            if os.path.exists(audio_path):
                with open(audio_path, "rb") as handle:
                    session.audio = handle.read()
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise PersistenceFailure(
                f"Could not read session {session_id}: {exc}", session_id
            ) from exc
        return session

    def list_ids(self) -> List[str]:
        try:
            names = os.listdir(self.paths["sessions"])
        except OSError as exc:
            raise PersistenceFailure(f"Could not list sessions: {exc}") from exc
        return sorted(
            name[: -len(SESSION_SUFFIX)] for name in names if name.endswith(SESSION_SUFFIX)
        )

    def get_all(self) -> List[Session]:
        sessions = [s for s in (self.get(sid) for sid in self.list_ids()) if s is not None]
        return sorted(sessions, key=lambda s: s.created_at or "", reverse=True)

    def delete(self, session_id: str) -> bool:
        session_path = self._session_path(self._check_id(session_id))
        if not os.path.exists(session_path):
            return False
        session = self.get(session_id)
        try:
            if session is not None:
                audio_path = self._audio_path(session_id, session.audio_media_type)
                if os.path.exists(audio_path):
                    os.remove(audio_path)
            os.remove(session_path)
        except OSError as exc:
            raise PersistenceFailure(
                f"Could not delete session {session_id}: {exc}", session_id
            ) from exc
        logger.info("Session deleted: %s", session_id)
        return True

    def update_note(self, session_id: str, note: str) -> Session:
        current = self.get(session_id)
        if current is None:
            raise PersistenceFailure(f"Session not found: {session_id}", session_id)
        return self.put(replace(current, note=note))


class AsyncSessionStore:
    """Runs SessionStore operations on one worker thread.

    Operations complete in submission order, so writes to the same session
    are never reordered. Results and errors come back through futures.
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="voicepulse-store")
        self._lock = threading.Lock()
        self._closed = False

    def _submit(self, fn: Callable, *args) -> Future:
        with self._lock:
            if self._closed:
                future: Future = Future()
                future.set_exception(PersistenceFailure("Session store is closed."))
                return future
            return self._executor.submit(fn, *args)

    def put(self, session: Session) -> Future:
        return self._submit(self.store.put, session)

    def get(self, session_id: str) -> Future:
        return self._submit(self.store.get, session_id)

    def get_all(self) -> Future:
        return self._submit(self.store.get_all)

    def delete(self, session_id: str) -> Future:
        return self._submit(self.store.delete, session_id)

    def update_note(self, session_id: str, note: str) -> Future:
        return self._submit(self.store.update_note, session_id, note)

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "AsyncSessionStore":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()
