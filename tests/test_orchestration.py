"""Tests for workflow orchestration sessions."""

import time

import pytest

from skill_agency.config import Settings
from skill_agency.errors import NotFoundError, SessionStateError, ValidationError
from skill_agency.executor.channel import ProgressChannel
from skill_agency.executor.schemas import (
    ErrorEvent,
    ExecutionStatus,
    OrchestrationCompleteEvent,
    SessionStatus,
    SkillCompleteEvent,
)
from skill_agency.executor.step_runner import StepResult
from skill_agency.service import OrchestrationService
from skill_agency.workflows.schemas import WorkflowTemplate

SAAS = "full-stack-saas-mvp"


class FailOnSkill:
    def __init__(self, skill_id: str):
        self.skill_id = skill_id

    def run(self, step, context):
        if context.skill.id == self.skill_id:
            raise RuntimeError("runner crashed")
        return StepResult()


class SleepyRunner:
    def __init__(self, delay: float):
        self.delay = delay

    def run(self, step, context):
        time.sleep(self.delay)
        return StepResult()


def _wait_for_status(service, session_id, status, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if service.session_status(session_id).status == status:
            return
        time.sleep(0.01)
    raise AssertionError(f"session never reached {status}")


class TestFullRun:
    """A complete session: one skill_complete per skill, then complete."""

    def test_saas_workflow_end_to_end(self, service):
        session, channel = service.start_orchestration(SAAS, {})
        assert session.total_skills == 9

        events = channel.drain(timeout=10)
        assert len(events) == 10
        assert all(isinstance(e, SkillCompleteEvent) for e in events[:-1])
        assert [e.skill for e in events[:-1]] == list(range(1, 10))
        assert isinstance(events[-1], OrchestrationCompleteEvent)
        assert events[-1].context.skills == 9

        snapshot = service.session_status(session.session_id)
        assert snapshot.status == SessionStatus.COMPLETED
        assert snapshot.skills_completed == 9
        assert snapshot.progress == 100.0

    def test_wire_events(self, service):
        _, channel = service.start_orchestration(SAAS, {})
        events = channel.drain(timeout=10)
        assert events[0].to_json() == '{"type":"skill_complete","skill":1}'
        assert events[-1].to_json() == '{"type":"complete","context":{"skills":9}}'

    def test_decisions_reach_skill_parameters(self, service):
        session, channel = service.start_orchestration(SAAS, {"database": "mysql"})
        channel.drain(timeout=10)
        records = service.execution_log.list_executions(limit=50)
        schema_run = next(r for r in records if r.skill_id == "database-schema")
        assert schema_run.parameters["database"] == "mysql"
        assert schema_run.session_id == session.session_id
        assert all(r.status == ExecutionStatus.COMPLETED for r in records)

    def test_parallel_phases_keep_counts_monotonic(self, tmp_path):
        settings = Settings(
            output_dir=tmp_path,
            step_delay=0.0,
            critical_step_delay=0.0,
            phase_concurrency=3,
            session_timeout=None,
        )
        service = OrchestrationService(settings, step_runner=SleepyRunner(0.01))
        _, channel = service.start_orchestration(SAAS, {})
        events = channel.drain(timeout=10)
        assert [e.skill for e in events[:-1]] == list(range(1, 10))
        assert isinstance(events[-1], OrchestrationCompleteEvent)

    def test_workflow_without_skills_completes_immediately(self, service):
        workflow = WorkflowTemplate(id="empty", name="Empty", phases=())
        session = service.engine.start(workflow)
        channel = ProgressChannel()
        service.engine.run(session.session_id, workflow, channel)
        events = channel.drain(timeout=1)
        assert [e.type for e in events] == ["complete"]
        assert events[0].context.skills == 0
        assert service.session_status(session.session_id).status == SessionStatus.COMPLETED


class TestValidation:
    def test_unknown_workflow(self, service):
        with pytest.raises(NotFoundError):
            service.start_orchestration("no-such-workflow", {})

    def test_invalid_decisions_create_nothing(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.start_orchestration(SAAS, {"database": "oracle"})
        assert exc_info.value.errors[0].startswith("Invalid option for database")
        assert service.sessions.count() == 0


class TestCancellation:
    def test_explicit_cancel_is_idempotent(self, gated_service, gated_runner):
        session, channel = gated_service.start_orchestration(SAAS, {})
        assert gated_runner.started.wait(timeout=5)

        assert gated_service.cancel_session(session.session_id) is True
        assert gated_service.cancel_session(session.session_id) is False
        gated_runner.release.set()

        events = channel.drain(timeout=10)
        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert events[0].error == "Session cancelled"
        assert gated_service.session_status(session.session_id).status == SessionStatus.CANCELLED
        # No new skill started after cancellation
        assert {skill for skill, _ in gated_runner.calls} == {"project-scaffold"}

    def test_disconnect_cancels_without_events(self, gated_service, gated_runner):
        session, channel = gated_service.start_orchestration(SAAS, {})
        assert gated_runner.started.wait(timeout=5)

        channel.disconnect()
        channel.disconnect()
        gated_runner.release.set()

        assert channel.drain(timeout=10) == []
        assert gated_service.session_status(session.session_id).status == SessionStatus.CANCELLED
        records = gated_service.execution_log.list_executions()
        assert [r.status for r in records] == [ExecutionStatus.CANCELLED]

    def test_disconnect_noticed_when_reporting_progress(self, service):
        workflow = service.get_workflow(SAAS)
        session = service.engine.start(workflow)
        channel = ProgressChannel()
        channel.disconnect()

        service.engine.run(session.session_id, workflow, channel)

        assert channel.drain(timeout=1) == []
        snapshot = service.session_status(session.session_id)
        assert snapshot.status == SessionStatus.CANCELLED
        assert snapshot.skills_completed == 1
        records = service.execution_log.list_executions()
        assert [r.skill_id for r in records] == ["project-scaffold"]

    def test_cancel_unknown_session(self, service):
        with pytest.raises(NotFoundError):
            service.cancel_session("session-missing")


class TestRollback:
    def test_rollback_stops_session(self, gated_service, gated_runner):
        session, channel = gated_service.start_orchestration(SAAS, {})
        assert gated_runner.started.wait(timeout=5)

        record = gated_service.rollback_session(session.session_id, 2)
        assert record.target_step == 2
        gated_runner.release.set()

        events = channel.drain(timeout=10)
        assert [e.type for e in events] == ["error"]
        assert events[0].error == "Session rolled back to step 2"
        assert gated_service.session_status(session.session_id).status == SessionStatus.ROLLED_BACK

        with pytest.raises(SessionStateError):
            gated_service.rollback_session(session.session_id, 1)

    def test_rollback_unknown_session(self, service):
        with pytest.raises(NotFoundError):
            service.rollback_session("session-missing", 1)


class TestFailures:
    def test_skill_failure_ends_session_with_error(self, settings):
        service = OrchestrationService(settings, step_runner=FailOnSkill("api-design"))
        session, channel = service.start_orchestration(SAAS, {})
        events = channel.drain(timeout=10)

        assert [e.skill for e in events[:-1]] == [1, 2, 3]
        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].error.startswith("Skill 'API Design' failed")
        assert "runner crashed" in events[-1].error

        snapshot = service.session_status(session.session_id)
        assert snapshot.status == SessionStatus.ERROR
        assert snapshot.skills_completed == 3

    def test_session_timeout(self, tmp_path, gated_runner):
        settings = Settings(
            output_dir=tmp_path,
            step_delay=0.0,
            critical_step_delay=0.0,
            session_timeout=0.05,
        )
        service = OrchestrationService(settings, step_runner=gated_runner)
        session, channel = service.start_orchestration(SAAS, {})

        # The deadline passes while the first skill is held
        assert gated_runner.started.wait(timeout=5)
        time.sleep(0.2)
        gated_runner.release.set()
        events = channel.drain(timeout=10)

        assert [e.type for e in events] == ["skill_complete", "error"]
        assert events[-1].error == "Session timed out after 0.05s"
        assert {skill for skill, _ in gated_runner.calls} == {"project-scaffold"}
        _wait_for_status(service, session.session_id, SessionStatus.ERROR)
