"""Workflow orchestration: runs every skill of a workflow, phase by phase.

The engine is the entry point for executing a workflow template with a set
of decisions. It:

1. Validates the decisions and creates a session with a fixed skill total
2. Runs phases in declared order; skills within a phase run sequentially,
   or on a bounded thread pool when phase concurrency > 1
3. Emits `skill_complete` with the running count after every skill
4. Emits `complete` once every skill has finished
5. Handles errors, cancellation, rollback and the session deadline

`run()` blocks; `start_thread()` runs it in a background daemon thread,
which is how the API drives it.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Mapping, Optional, Union

from skill_agency.errors import ExecutionError, TransportError
from skill_agency.skills.registry import SkillRegistry
from skill_agency.skills.schemas import SkillDefinition
from skill_agency.workflows.decisions import extract_decisions, resolve_selections
from skill_agency.workflows.schemas import Phase, SkillRef, WorkflowTemplate

from .channel import ProgressChannel
from .schemas import (
    CompletionContext,
    ErrorEvent,
    ExecutionCompleteEvent,
    OrchestrationCompleteEvent,
    OrchestrationSession,
    RollbackRecord,
    SessionSnapshot,
    SessionStatus,
    SkillCompleteEvent,
)
from .session_manager import SessionRegistry
from .skill_runner import SkillExecutor

logger = logging.getLogger(__name__)


class SessionStopped(Exception):
    """The session left the active state while a skill was running."""


class OrchestrationEngine:
    """Drives workflow sessions through the skill executor."""

    def __init__(
        self,
        sessions: SessionRegistry,
        skill_executor: SkillExecutor,
        skill_registry: SkillRegistry,
        phase_concurrency: int = 1,
        session_timeout: Optional[float] = None,
    ):
        self.sessions = sessions
        self.skill_executor = skill_executor
        self.skill_registry = skill_registry
        self.phase_concurrency = max(1, phase_concurrency)
        self.session_timeout = session_timeout

    # --- Lifecycle entry points ---

    def start(
        self,
        workflow: WorkflowTemplate,
        decisions: Optional[Mapping[str, Any]] = None,
    ) -> OrchestrationSession:
        """Validate decisions and create the session (status: created).

        Raises:
            ValidationError: unknown decision ids or out-of-option values.
        """
        resolved = resolve_selections(decisions or {}, extract_decisions(workflow))
        return self.sessions.create_session(
            workflow_id=workflow.id,
            decisions=resolved,
            total_skills=workflow.total_skills,
        )

    def start_thread(
        self,
        session_id: str,
        workflow: WorkflowTemplate,
        channel: ProgressChannel,
    ) -> threading.Thread:
        """Spawn a background thread that runs the session.

        Returns the thread (for testing). The caller doesn't need to join:
        everything the client needs arrives through the channel.
        """
        thread = threading.Thread(
            target=self.run,
            args=(session_id, workflow, channel),
            name=f"orchestrator-{session_id}",
            daemon=True,
        )
        thread.start()
        logger.info(f"Started orchestration thread for session {session_id}")
        return thread

    def cancel(self, session_id: str) -> bool:
        """Request cancellation. Idempotent; True only on the first call."""
        cancelled = self.sessions.request_cancellation(session_id)
        if cancelled:
            logger.info(f"Session {session_id} cancellation requested")
        return cancelled

    def rollback(self, session_id: str, target_step: Union[int, str]) -> RollbackRecord:
        """Roll an active session back to a step and stop scheduling skills.

        Raises:
            NotFoundError: unknown session.
            SessionStateError: the session is not active.
        """
        return self.sessions.rollback(session_id, target_step)

    def status(self, session_id: str) -> SessionSnapshot:
        return self.sessions.snapshot(session_id)

    # --- Driver ---

    def run(
        self,
        session_id: str,
        workflow: WorkflowTemplate,
        channel: ProgressChannel,
    ) -> None:
        """Execute a session to its end. Called from a background thread.

        Never raises: failures become the session's error state and a
        terminal `error` event.
        """
        try:
            session = self.sessions.get_session(session_id)
            if session is None:
                logger.error(f"Session not found: {session_id}")
                return
            if not self.sessions.activate(session_id):
                logger.info(f"Session {session_id} stopped before it started")
                self._emit_stopped(session_id, channel)
                return

            deadline = (
                time.monotonic() + self.session_timeout
                if self.session_timeout else None
            )
            logger.info(
                f"Starting session {session_id}: workflow {workflow.id}, "
                f"{len(workflow.phases)} phases, {workflow.total_skills} skills, "
                f"decisions={session.decisions}"
            )

            for phase_index, phase in enumerate(workflow.phases):
                if not self.sessions.is_active(session_id):
                    raise SessionStopped()
                logger.info(
                    f"Session {session_id}: phase {phase_index + 1}/"
                    f"{len(workflow.phases)} '{phase.name}' ({len(phase.skills)} skills)"
                )
                if self.phase_concurrency > 1 and len(phase.skills) > 1:
                    self._run_parallel_phase(session_id, phase, session.decisions, channel, deadline)
                else:
                    for ref in phase.skills:
                        self._run_skill(session_id, ref, session.decisions, deadline)
                        self._record_skill(session_id, channel)

            if self.sessions.complete(session_id):
                channel.emit(OrchestrationCompleteEvent(
                    context=CompletionContext(skills=workflow.total_skills)
                ))
                logger.info(
                    f"Session {session_id} completed: {workflow.total_skills} skills"
                )
            else:
                # Cancelled or rolled back after the last skill finished
                self._emit_stopped(session_id, channel)

        except SessionStopped:
            self._emit_stopped(session_id, channel)

        except TransportError as e:
            logger.info(f"Session {session_id} cancelled: {e.message}")

        except Exception as e:
            message = e.message if isinstance(e, ExecutionError) else str(e)
            logger.error(f"Session {session_id} failed: {message}", exc_info=True)
            if self.sessions.fail(session_id, message):
                channel.emit(ErrorEvent(error=message))
            else:
                self._emit_stopped(session_id, channel)

        finally:
            channel.finish()

    def _run_parallel_phase(
        self,
        session_id: str,
        phase: Phase,
        decisions: Mapping[str, str],
        channel: ProgressChannel,
        deadline: Optional[float],
    ) -> None:
        """Run a phase's skills on a bounded pool.

        Completions are recorded here, on the driver thread, in the order
        they finish, so the emitted counts stay strictly increasing.
        """
        with ThreadPoolExecutor(
            max_workers=self.phase_concurrency,
            thread_name_prefix=f"phase-{session_id}",
        ) as pool:
            futures = {
                pool.submit(self._run_skill, session_id, ref, decisions, deadline): ref
                for ref in phase.skills
            }
            try:
                for future in as_completed(futures):
                    future.result()
                    self._record_skill(session_id, channel)
            except BaseException as e:
                # Queued skills must not start once the phase has failed,
                # running ones stop at their next step
                for future in futures:
                    future.cancel()
                if isinstance(e, ExecutionError):
                    self.sessions.fail(session_id, e.message)
                raise

    def _run_skill(
        self,
        session_id: str,
        ref: SkillRef,
        decisions: Mapping[str, str],
        deadline: Optional[float],
    ) -> None:
        """Run one skill to completion.

        Raises:
            SessionStopped: the session was cancelled or rolled back.
            ExecutionError: the skill failed or the session deadline passed.
        """
        if not self.sessions.is_active(session_id):
            raise SessionStopped()
        if deadline is not None and time.monotonic() > deadline:
            raise ExecutionError(
                f"Session timed out after {self.session_timeout}s"
            )

        skill = self.skill_registry.resolve(ref)
        events = self.skill_executor.execute(
            skill,
            self._skill_parameters(skill, decisions),
            cancellation_check=lambda: not self.sessions.is_active(session_id),
            session_id=session_id,
            strict=False,
        )
        try:
            for event in events:
                if isinstance(event, ErrorEvent):
                    raise ExecutionError(f"Skill '{ref.name}' failed: {event.error}")
                if isinstance(event, ExecutionCompleteEvent):
                    logger.info(
                        f"Session {session_id}: skill {ref.id} done in {event.duration}"
                    )
                    return
        finally:
            events.close()
        # The executor stops without a terminal event only when cancelled
        raise SessionStopped()

    def _record_skill(self, session_id: str, channel: ProgressChannel) -> None:
        """Count a finished skill and report the running total.

        Raises:
            SessionStopped: the session is no longer active.
            TransportError: the consumer is gone; the session is cancelled.
        """
        count = self.sessions.record_skill_completed(session_id)
        if count is None:
            raise SessionStopped()
        if not channel.emit(SkillCompleteEvent(skill=count)) and channel.disconnected:
            self.sessions.request_cancellation(session_id)
            raise TransportError(f"Client disconnected from session {session_id}")

    @staticmethod
    def _skill_parameters(
        skill: SkillDefinition,
        decisions: Mapping[str, str],
    ) -> dict[str, Any]:
        """Decisions whose ids name one of the skill's parameters."""
        names = {p.name for p in skill.parameters}
        return {key: value for key, value in decisions.items() if key in names}

    def _emit_stopped(self, session_id: str, channel: ProgressChannel) -> None:
        """Terminal event for a session stopped from outside the driver.

        A disconnected channel rejects it, so a client that went away gets
        nothing; one that is still listening learns why the stream ended.
        """
        session = self.sessions.get_session(session_id)
        if session is None:
            return
        if session.status == SessionStatus.CANCELLED:
            channel.emit(ErrorEvent(error="Session cancelled"))
        elif session.status == SessionStatus.ROLLED_BACK:
            channel.emit(ErrorEvent(
                error=f"Session rolled back to step {session.rollback_target}"
            ))
        elif session.status == SessionStatus.ERROR and session.error:
            channel.emit(ErrorEvent(error=session.error))
