"""Orchestration service: the single object the API talks to.

Owns the workflow catalog, objective matcher, skill registry, execution log,
skill executor, session registry and orchestration engine, all built from
one Settings instance. Nothing here is a process-wide singleton: tests and
embedders create as many services as they like.
"""

import logging
import threading
from typing import Any, Iterator, Mapping, Optional, Union

from skill_agency.config import Settings
from skill_agency.errors import NotFoundError
from skill_agency.executor.channel import ProgressChannel
from skill_agency.executor.execution_log import ExecutionLog
from skill_agency.executor.orchestration import OrchestrationEngine
from skill_agency.executor.schemas import (
    ExecutionRecord,
    ExecutionStatus,
    OrchestrationSession,
    ProgressEvent,
    RollbackRecord,
    SessionSnapshot,
    SessionStatus,
    new_id,
)
from skill_agency.executor.session_manager import SessionRegistry
from skill_agency.executor.skill_runner import SkillExecutor
from skill_agency.executor.step_runner import ManifestStepRunner, StepRunner
from skill_agency.skills.registry import SkillRegistry
from skill_agency.skills.schemas import DryRunResult, SkillDefinition, SkillSummary
from skill_agency.workflows.decisions import extract_decisions
from skill_agency.workflows.matcher import ObjectiveMatcher, load_keyword_table
from skill_agency.workflows.registry import WorkflowCatalog
from skill_agency.workflows.schemas import DecisionPoint, WorkflowSummary, WorkflowTemplate

logger = logging.getLogger(__name__)


class OrchestrationService:
    """Facade over catalog, skills, executor and sessions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        step_runner: Optional[StepRunner] = None,
    ):
        self.settings = settings or Settings.from_env()
        s = self.settings

        self.catalog = WorkflowCatalog(s.workflows_path)
        self.skills = SkillRegistry(s.skills_dir)
        self.matcher = ObjectiveMatcher(
            default_workflow_id=s.default_workflow_id,
            keywords=load_keyword_table(s.keywords_path),
        )
        self.execution_log = ExecutionLog()
        self.executor = SkillExecutor(
            step_runner=step_runner or ManifestStepRunner(
                step_delay=s.step_delay,
                critical_step_delay=s.critical_step_delay,
            ),
            execution_log=self.execution_log,
            output_dir=s.output_dir,
            step_timeout=s.step_timeout,
            step_delay=s.step_delay,
            critical_step_delay=s.critical_step_delay,
        )
        self.sessions = SessionRegistry()
        self.engine = OrchestrationEngine(
            sessions=self.sessions,
            skill_executor=self.executor,
            skill_registry=self.skills,
            phase_concurrency=s.phase_concurrency,
            session_timeout=s.session_timeout,
        )

    def load(self) -> None:
        """Load catalog and skill definitions (idempotent)."""
        self.catalog.load()
        self.skills.load()

    def _new_channel(self, name: str) -> ProgressChannel:
        return ProgressChannel(
            max_events=self.settings.channel_max_events,
            put_timeout=self.settings.channel_put_timeout,
            name=name,
        )

    # --- Workflows ---

    def analyze(self, objective: str) -> Optional[WorkflowTemplate]:
        """Recommended workflow for an objective, None if it isn't in the catalog."""
        workflow_id = self.matcher.match(objective)
        workflow = self.catalog.get(workflow_id)
        if workflow is None:
            logger.warning(f"Matched workflow {workflow_id} is not in the catalog")
        return workflow

    def list_workflows(self) -> list[WorkflowSummary]:
        return self.catalog.list_all()

    def get_workflow(self, workflow_id: str) -> WorkflowTemplate:
        workflow = self.catalog.get(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    def workflow_decisions(self, workflow_id: str) -> list[DecisionPoint]:
        return extract_decisions(self.get_workflow(workflow_id))

    # --- Orchestration sessions ---

    def start_orchestration(
        self,
        workflow_id: str,
        decisions: Optional[Mapping[str, Any]] = None,
    ) -> tuple[OrchestrationSession, ProgressChannel]:
        """Create a session and start driving it in the background.

        The returned channel carries `skill_complete` events and one
        terminal event. Disconnecting it cancels the session.

        Raises:
            NotFoundError: unknown workflow.
            ValidationError: invalid decisions.
        """
        workflow = self.get_workflow(workflow_id)
        session = self.engine.start(workflow, decisions)
        session_id = session.session_id

        channel = self._new_channel(session_id)
        channel.set_disconnect_handler(lambda: self.engine.cancel(session_id))
        self.engine.start_thread(session_id, workflow, channel)
        return session, channel

    def session_status(self, session_id: str) -> SessionSnapshot:
        return self.engine.status(session_id)

    def cancel_session(self, session_id: str) -> bool:
        """Cancel a session. False if it was already finished."""
        # Raises NotFoundError for unknown sessions
        self.engine.status(session_id)
        return self.engine.cancel(session_id)

    def rollback_session(
        self,
        session_id: str,
        target_step: Union[int, str],
    ) -> RollbackRecord:
        return self.engine.rollback(session_id, target_step)

    def list_sessions(
        self,
        status: Optional[SessionStatus] = None,
        limit: int = 20,
    ) -> list[SessionSnapshot]:
        return self.sessions.list_sessions(status=status, limit=limit)

    # --- Skills ---

    def list_skills(self) -> list[SkillSummary]:
        return self.skills.list_all()

    def get_skill(self, skill_id: str) -> SkillDefinition:
        skill = self.skills.get(skill_id)
        if skill is None:
            raise NotFoundError("Skill", skill_id)
        return skill

    def validate_skill(self, skill_id: str, parameters: Mapping[str, Any]) -> DryRunResult:
        return self.executor.dry_run(self.get_skill(skill_id), parameters)

    def start_skill_execution(
        self,
        skill_id: str,
        parameters: Mapping[str, Any],
        level: Optional[str] = None,
        persona: Optional[str] = None,
    ) -> tuple[str, ProgressChannel]:
        """Validate and start a single skill execution in the background.

        Returns the execution id and the channel carrying its events.
        Disconnecting the channel cancels the run before its next step.

        Raises:
            NotFoundError: unknown skill.
            ValidationError: invalid parameters; nothing was started.
        """
        skill = self.get_skill(skill_id)
        execution_id = new_id("exec")
        stop = threading.Event()
        events = self.executor.execute(
            skill,
            parameters,
            cancellation_check=stop.is_set,
            level=level,
            persona=persona,
            execution_id=execution_id,
        )

        channel = self._new_channel(execution_id)
        channel.set_disconnect_handler(stop.set)

        thread = threading.Thread(
            target=self._pump,
            args=(events, channel),
            name=f"skill-{execution_id}",
            daemon=True,
        )
        thread.start()
        logger.info(f"Started skill execution {execution_id} ({skill_id})")
        return execution_id, channel

    @staticmethod
    def _pump(events: Iterator[ProgressEvent], channel: ProgressChannel) -> None:
        """Forward executor events into a channel until either side stops."""
        try:
            for event in events:
                if not channel.emit(event):
                    break
        except Exception as e:
            logger.error(f"Channel {channel.name}: execution crashed: {e}", exc_info=True)
        finally:
            events.close()
            channel.finish()

    # --- Execution history ---

    def list_executions(
        self,
        status: Optional[ExecutionStatus] = None,
        limit: int = 20,
    ) -> list[ExecutionRecord]:
        return self.execution_log.list_executions(status=status, limit=limit)

    def get_execution(self, execution_id: str) -> ExecutionRecord:
        record = self.execution_log.get(execution_id)
        if record is None:
            raise NotFoundError("Execution", execution_id)
        return record

    def rollback_execution(self, rollback_token: str) -> ExecutionRecord:
        return self.execution_log.rollback(rollback_token)
