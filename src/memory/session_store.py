"""Session store: the persistent collection of TrainingSession records.

Single source of truth for the plan. Every mutation goes through one
re-entrant lock and is persisted with a single atomic file write, so a
delete-then-insert replacement is never observable half-applied, neither by
another thread nor on disk after an interruption.
"""

import dataclasses
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable

from src.memory.training_session import SessionStatus, TrainingSession

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent.parent / "data"
SESSIONS_PATH = DATA_DIR / "training" / "sessions.json"


class SessionNotFoundError(KeyError):
    """No session with the given id exists in the store."""


class SessionStore:
    """JSON-file backed repository of training sessions."""

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path else SESSIONS_PATH
        self._lock = threading.RLock()
        self._sessions: dict[str, TrainingSession] = self._load()

    # ── Persistence ──────────────────────────────────────────────

    def _load(self) -> dict[str, TrainingSession]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text())
            sessions = [TrainingSession.from_dict(item) for item in raw.get("sessions", [])]
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise ValueError(f"Corrupt session store at {self._path}: {e}") from e
        return {s.id: s for s in sessions}

    def _persist(self) -> None:
        """Write the whole collection via temp file + rename."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"sessions": [s.to_dict() for s in self._sessions.values()]}
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".sessions_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def transaction(self):
        """Hold the writer lock across a read-then-write sequence."""
        with self._lock:
            yield self

    # ── Queries ──────────────────────────────────────────────────

    def all(self) -> list[TrainingSession]:
        """All sessions, sorted by date ascending."""
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.date)

    def get(self, session_id: str) -> TrainingSession:
        with self._lock:
            try:
                return self._sessions[session_id]
            except KeyError:
                raise SessionNotFoundError(session_id) from None

    def query(self, predicate: Callable[[TrainingSession], bool]) -> list[TrainingSession]:
        """Sessions matching predicate, sorted by date ascending."""
        with self._lock:
            return [s for s in self.all() if predicate(s)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ── Mutations ────────────────────────────────────────────────

    def insert(self, session: TrainingSession) -> TrainingSession:
        self.replace([], [session])
        return session

    def insert_many(self, sessions: Iterable[TrainingSession]) -> int:
        sessions = list(sessions)
        self.replace([], sessions)
        return len(sessions)

    def delete(self, session_ids: Iterable[str]) -> int:
        return self.replace(session_ids, [])[0]

    def replace(
        self,
        delete_ids: Iterable[str],
        inserts: Iterable[TrainingSession],
    ) -> tuple[int, int]:
        """Delete and insert as one unit. Returns (deleted, inserted).

        Unknown ids in delete_ids are ignored. Inserting an id that already
        exists (and is not being deleted) raises ValueError before anything
        changes.
        """
        delete_ids = set(delete_ids)
        inserts = list(inserts)
        with self._lock:
            for s in inserts:
                if s.id in self._sessions and s.id not in delete_ids:
                    raise ValueError(f"Session {s.id} already exists")

            snapshot = dict(self._sessions)
            deleted = 0
            for session_id in delete_ids:
                if self._sessions.pop(session_id, None) is not None:
                    deleted += 1
            for s in inserts:
                self._sessions[s.id] = s

            if not deleted and not inserts:
                return 0, 0
            try:
                self._persist()
            except BaseException:
                self._sessions = snapshot
                raise
            logger.debug("Store write: %d deleted, %d inserted", deleted, len(inserts))
            return deleted, len(inserts)

    def replace_matching(
        self,
        predicate: Callable[[TrainingSession], bool],
        inserts: Iterable[TrainingSession],
    ) -> tuple[int, int]:
        """Like replace, with the deletion set evaluated under the same lock."""
        with self._lock:
            doomed = [s.id for s in self._sessions.values() if predicate(s)]
            return self.replace(doomed, inserts)

    def update(self, session: TrainingSession) -> TrainingSession:
        """Persist changes to an existing session (user edits)."""
        with self._lock:
            if session.id not in self._sessions:
                raise SessionNotFoundError(session.id)
            snapshot = dict(self._sessions)
            self._sessions[session.id] = session
            try:
                self._persist()
            except BaseException:
                self._sessions = snapshot
                raise
            return session

    def set_status(self, session_id: str, status: SessionStatus) -> TrainingSession:
        with self._lock:
            return self.update(dataclasses.replace(self.get(session_id), status=status))

    def record_completion(
        self,
        session_id: str,
        distance_km: float | None = None,
        avg_heart_rate: int | None = None,
        perceived_effort: int | None = None,
        comment: str | None = None,
    ) -> TrainingSession:
        """Mark a session Completed and attach post-session metrics."""
        if perceived_effort is not None and not 1 <= perceived_effort <= 10:
            raise ValueError(f"perceived_effort must be within 1-10, got {perceived_effort}")
        changes = {
            "distance_km": distance_km,
            "avg_heart_rate": avg_heart_rate,
            "perceived_effort": perceived_effort,
            "comment": comment,
        }
        with self._lock:
            session = dataclasses.replace(
                self.get(session_id),
                status=SessionStatus.COMPLETED,
                **{k: v for k, v in changes.items() if v is not None},
            )
            return self.update(session)
