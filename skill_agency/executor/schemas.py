"""Executor-side schemas: session state, execution records, progress events.

These are distinct from the workflow and skill schemas (which describe
templates). Executor schemas describe what happens during and after a run.

Progress events serialize to the compact camelCase JSON that streaming
clients parse.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Literal, Optional, Union

from pydantic import ConfigDict, Field

from skill_agency.workflows.schemas import WireModel


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class SessionStatus(str, Enum):
    """Orchestration session lifecycle states."""
    CREATED = "created"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ROLLED_BACK = "rolled-back"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self not in (SessionStatus.CREATED, SessionStatus.ACTIVE)


class ExecutionStatus(str, Enum):
    """Single skill execution states."""
    QUEUED = "queued"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ROLLED_BACK = "rolled-back"


class MutableWireModel(WireModel):
    model_config = ConfigDict(frozen=False)


class OrchestrationSession(MutableWireModel):
    """State of one workflow run. Owned and mutated by the engine only."""

    session_id: str = Field(default_factory=lambda: new_id("session"))
    workflow_id: str
    decisions: dict[str, str] = Field(default_factory=dict)
    status: SessionStatus = SessionStatus.CREATED
    skills_completed: int = 0
    total_skills: int = Field(..., ge=0, description="Fixed at creation")
    created_at: str = Field(default_factory=utc_now)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    rollback_target: Optional[Union[int, str]] = None

    @property
    def progress(self) -> float:
        """Overall completion percentage."""
        if self.total_skills == 0:
            return 100.0 if self.status == SessionStatus.COMPLETED else 0.0
        return round(self.skills_completed / self.total_skills * 100, 1)


class SessionSnapshot(WireModel):
    """Status response for a session."""

    session_id: str
    workflow_id: str
    status: SessionStatus
    skills_completed: int
    total_skills: int
    progress: float
    error: Optional[str] = None


class RollbackRecord(WireModel):
    """Audit entry for a session rollback."""

    session_id: str
    target_step: Union[int, str]
    previous_status: SessionStatus
    skills_completed: int
    requested_at: str = Field(default_factory=utc_now)


class ExecutionRecord(MutableWireModel):
    """One skill execution, as handed to external persistence."""

    execution_id: str = Field(default_factory=lambda: new_id("exec"))
    skill_id: str
    session_id: Optional[str] = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.QUEUED
    started_at: str = Field(default_factory=utc_now)
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None
    outputs: dict[str, Any] = Field(default_factory=dict)
    rollback_token: Optional[str] = None
    error: Optional[str] = None


# --- Progress events ---


class ProgressEvent(WireModel):
    """Base for streamed events."""

    terminal: ClassVar[bool] = False

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class StartedEvent(ProgressEvent):
    type: Literal["started"] = "started"
    execution_id: str
    skill_name: str
    total_steps: int
    parameters: dict[str, Any] = Field(default_factory=dict)


class StepProgressEvent(ProgressEvent):
    type: Literal["step_progress"] = "step_progress"
    step_index: int
    step_name: str
    step_id: str
    critical: bool
    progress: int
    status: Literal["running"] = "running"
    timestamp: str = Field(default_factory=utc_now)


class ExecutionCompleteEvent(ProgressEvent):
    terminal: ClassVar[bool] = True

    type: Literal["complete"] = "complete"
    execution_id: str
    success: Literal[True] = True
    total_steps: int
    duration: str
    files_created: int
    output_directory: str
    rollback_token: str


class SkillCompleteEvent(ProgressEvent):
    type: Literal["skill_complete"] = "skill_complete"
    skill: int = Field(..., description="Running count of completed skills")


class CompletionContext(WireModel):
    skills: int


class OrchestrationCompleteEvent(ProgressEvent):
    terminal: ClassVar[bool] = True

    type: Literal["complete"] = "complete"
    context: CompletionContext


class ErrorEvent(ProgressEvent):
    terminal: ClassVar[bool] = True

    type: Literal["error"] = "error"
    error: str
    execution_id: Optional[str] = None
