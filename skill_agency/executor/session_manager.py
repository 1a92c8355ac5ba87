"""Session lifecycle management for orchestration runs.

Handles:
- Session creation with a fixed skill total
- Progress updates (skill completion counts)
- Terminal transitions: completed, cancelled, rolled-back, error
- Status snapshots for polling
- Rollback audit records

Every session entry has its own lock, so a transition is atomic and only
ever happens once: a second cancel of the same session is a no-op. Only the
session's driver thread advances progress; any thread may request a
terminal transition.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional, Union

from skill_agency.errors import NotFoundError, SessionStateError

from .schemas import (
    OrchestrationSession,
    RollbackRecord,
    SessionSnapshot,
    SessionStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    session: OrchestrationSession
    lock: threading.Lock = field(default_factory=threading.Lock)


class SessionRegistry:
    """In-memory registry of orchestration sessions keyed by session id."""

    def __init__(self, max_sessions: int = 500):
        self.max_sessions = max_sessions
        self._entries: dict[str, _Entry] = {}
        self._rollbacks: list[RollbackRecord] = []
        self._lock = threading.Lock()

    def create_session(
        self,
        workflow_id: str,
        decisions: dict[str, str],
        total_skills: int,
    ) -> OrchestrationSession:
        """Register a new session in the created state."""
        session = OrchestrationSession(
            workflow_id=workflow_id,
            decisions=dict(decisions),
            total_skills=total_skills,
        )
        with self._lock:
            self._entries[session.session_id] = _Entry(session=session)
            self._prune()
        logger.info(
            f"Created session {session.session_id} for workflow {workflow_id} "
            f"({total_skills} skills)"
        )
        return session.model_copy(deep=True)

    def _prune(self) -> None:
        """Drop the oldest finished sessions beyond max_sessions."""
        overflow = len(self._entries) - self.max_sessions
        if overflow <= 0:
            return
        for session_id in list(self._entries):
            if overflow <= 0:
                break
            if self._entries[session_id].session.status.is_terminal:
                del self._entries[session_id]
                overflow -= 1

    def _entry(self, session_id: str) -> _Entry:
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            raise NotFoundError("Session", session_id)
        return entry

    def get_session(self, session_id: str) -> Optional[OrchestrationSession]:
        """Copy of a session's current state, or None."""
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            return None
        with entry.lock:
            return entry.session.model_copy(deep=True)

    def snapshot(self, session_id: str) -> SessionSnapshot:
        entry = self._entry(session_id)
        with entry.lock:
            s = entry.session
            return SessionSnapshot(
                session_id=s.session_id,
                workflow_id=s.workflow_id,
                status=s.status,
                skills_completed=s.skills_completed,
                total_skills=s.total_skills,
                progress=s.progress,
                error=s.error,
            )

    def list_sessions(
        self,
        status: Optional[SessionStatus] = None,
        limit: int = 20,
    ) -> list[SessionSnapshot]:
        """Most recent sessions first."""
        with self._lock:
            session_ids = list(self._entries)
        session_ids.reverse()
        snapshots = []
        for session_id in session_ids:
            try:
                snap = self.snapshot(session_id)
            except NotFoundError:
                continue
            if status is None or snap.status == status:
                snapshots.append(snap)
            if len(snapshots) >= limit:
                break
        return snapshots

    # --- Transitions ---

    def activate(self, session_id: str) -> bool:
        """created -> active. Returns False if the session already moved on."""
        entry = self._entry(session_id)
        with entry.lock:
            if entry.session.status != SessionStatus.CREATED:
                return False
            entry.session.status = SessionStatus.ACTIVE
            entry.session.started_at = utc_now()
        logger.info(f"Session {session_id} status -> active")
        return True

    def is_active(self, session_id: str) -> bool:
        entry = self._entry(session_id)
        with entry.lock:
            return entry.session.status == SessionStatus.ACTIVE

    def status(self, session_id: str) -> SessionStatus:
        entry = self._entry(session_id)
        with entry.lock:
            return entry.session.status

    def record_skill_completed(self, session_id: str) -> Optional[int]:
        """Count one completed skill.

        Returns the new running count, or None when the session is no
        longer active (the completion arrived after cancellation/rollback).
        """
        entry = self._entry(session_id)
        with entry.lock:
            s = entry.session
            if s.status != SessionStatus.ACTIVE:
                return None
            if s.skills_completed >= s.total_skills:
                logger.warning(
                    f"Session {session_id}: ignoring completion beyond "
                    f"{s.total_skills} skills"
                )
                return None
            s.skills_completed += 1
            return s.skills_completed

    def _finish(
        self,
        session_id: str,
        status: SessionStatus,
        error: Optional[str] = None,
        allowed: tuple[SessionStatus, ...] = (SessionStatus.CREATED, SessionStatus.ACTIVE),
    ) -> bool:
        entry = self._entry(session_id)
        with entry.lock:
            if entry.session.status not in allowed:
                return False
            entry.session.status = status
            entry.session.completed_at = utc_now()
            if error is not None:
                entry.session.error = error
        logger.info(
            f"Session {session_id} status -> {status.value}"
            + (f" (error: {error})" if error else "")
        )
        return True

    def complete(self, session_id: str) -> bool:
        """active -> completed, only once every skill has completed."""
        entry = self._entry(session_id)
        with entry.lock:
            s = entry.session
            if s.status != SessionStatus.ACTIVE or s.skills_completed != s.total_skills:
                return False
            s.status = SessionStatus.COMPLETED
            s.completed_at = utc_now()
        logger.info(f"Session {session_id} status -> completed")
        return True

    def fail(self, session_id: str, error: str) -> bool:
        """created/active -> error."""
        return self._finish(session_id, SessionStatus.ERROR, error=error)

    def request_cancellation(self, session_id: str) -> bool:
        """created/active -> cancelled.

        Returns True only for the call that performed the transition, so
        repeated disconnect signals cancel exactly once.
        """
        return self._finish(session_id, SessionStatus.CANCELLED)

    def rollback(self, session_id: str, target_step: Union[int, str]) -> RollbackRecord:
        """active -> rolled-back, with an audit record.

        Only the status changes; undoing skill side effects belongs to the
        external skill-runner.

        Raises:
            NotFoundError: unknown session.
            SessionStateError: the session is not active.
        """
        entry = self._entry(session_id)
        with entry.lock:
            s = entry.session
            if s.status != SessionStatus.ACTIVE:
                raise SessionStateError(
                    f"Session {session_id} cannot be rolled back from status "
                    f"{s.status.value}"
                )
            record = RollbackRecord(
                session_id=session_id,
                target_step=target_step,
                previous_status=s.status,
                skills_completed=s.skills_completed,
            )
            s.status = SessionStatus.ROLLED_BACK
            s.rollback_target = target_step
            s.completed_at = utc_now()

        with self._lock:
            self._rollbacks.append(record)
        logger.info(f"Session {session_id} status -> rolled-back (target step {target_step})")
        return record

    def rollback_records(self, session_id: Optional[str] = None) -> list[RollbackRecord]:
        with self._lock:
            records = list(self._rollbacks)
        if session_id is not None:
            records = [r for r in records if r.session_id == session_id]
        return records

    def count(self) -> int:
        with self._lock:
            return len(self._entries)
