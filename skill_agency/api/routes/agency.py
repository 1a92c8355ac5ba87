"""Agency API routes: objective analysis and workflow orchestration.

Endpoints:
    POST /api/agency/analyze                       Recommend a workflow for an objective
    POST /api/agency/orchestrate                   Start a session, stream its progress
    POST /api/agency/rollback                      Roll an active session back
    POST /api/agency/status                        Session status snapshot
    POST /api/agency/cancel                        Cancel a session
    GET  /api/agency/sessions                      List sessions, most recent first
    GET  /api/agency/workflows                     List workflow templates
    GET  /api/agency/workflows/{id}                Full workflow template
    GET  /api/agency/workflows/{id}/decisions      Decision points in order
    GET  /api/agency/skills                        List registered skills
"""

import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field

from skill_agency.api.deps import get_service
from skill_agency.api.streaming import event_stream
from skill_agency.executor.schemas import SessionSnapshot, SessionStatus
from skill_agency.service import OrchestrationService
from skill_agency.skills.schemas import SkillSummary
from skill_agency.workflows.schemas import (
    DecisionPoint,
    WireModel,
    WorkflowSummary,
    WorkflowTemplate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agency", tags=["agency"])


# --- Request / response models ---


class AnalyzeRequest(WireModel):
    objective: str = Field(..., description="Free-text description of what to build")


class AnalyzeResponse(WireModel):
    objective: str
    recommended_workflow: Optional[WorkflowTemplate] = None


class OrchestrateRequest(WireModel):
    workflow_type: str = Field(..., description="Workflow template id")
    decisions: dict[str, Any] = Field(default_factory=dict)


class SessionRequest(WireModel):
    session_id: str


class RollbackRequest(WireModel):
    session_id: str
    target_step: Union[int, str]


class RollbackResponse(WireModel):
    status: str = "success"
    message: str
    session_id: str
    target_step: Union[int, str]


class CancelResponse(WireModel):
    session_id: str
    status: SessionStatus
    cancelled: bool


class SessionListResponse(WireModel):
    sessions: list[SessionSnapshot]
    count: int


class WorkflowListResponse(WireModel):
    workflows: list[WorkflowSummary]
    count: int


class DecisionListResponse(WireModel):
    workflow_id: str
    decisions: list[DecisionPoint]
    count: int


class SkillListResponse(WireModel):
    skills: list[SkillSummary]
    count: int
    total: int


# --- Orchestration ---


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_objective(
    request: AnalyzeRequest,
    service: OrchestrationService = Depends(get_service),
) -> AnalyzeResponse:
    """Recommend a workflow template for a free-text objective."""
    if not request.objective.strip():
        raise HTTPException(status_code=400, detail="Objective is required")
    workflow = service.analyze(request.objective)
    logger.info(
        f"Analyzed objective ({len(request.objective)} chars) -> "
        f"{workflow.id if workflow else None}"
    )
    return AnalyzeResponse(objective=request.objective, recommended_workflow=workflow)


@router.post("/orchestrate")
async def orchestrate(
    request: OrchestrateRequest,
    service: OrchestrationService = Depends(get_service),
):
    """Start a workflow session and stream its progress.

    Unknown workflows and invalid decisions are rejected before the stream
    opens. The session id is returned in the X-Session-Id header.
    """
    session, channel = service.start_orchestration(request.workflow_type, request.decisions)
    return event_stream(channel, headers={"X-Session-Id": session.session_id})


@router.post("/rollback", response_model=RollbackResponse)
async def rollback(
    request: RollbackRequest,
    service: OrchestrationService = Depends(get_service),
) -> RollbackResponse:
    """Roll an active session back to a step. Stops further skills."""
    record = service.rollback_session(request.session_id, request.target_step)
    return RollbackResponse(
        message=f"Rolled back to step {record.target_step}",
        session_id=record.session_id,
        target_step=record.target_step,
    )


@router.post("/status", response_model=SessionSnapshot)
async def session_status(
    request: SessionRequest,
    service: OrchestrationService = Depends(get_service),
) -> SessionSnapshot:
    """Poll a session's status and progress percentage."""
    return service.session_status(request.session_id)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_session(
    request: SessionRequest,
    service: OrchestrationService = Depends(get_service),
) -> CancelResponse:
    """Cancel a session. Cancelling a finished session changes nothing."""
    cancelled = service.cancel_session(request.session_id)
    snapshot = service.session_status(request.session_id)
    return CancelResponse(
        session_id=snapshot.session_id,
        status=snapshot.status,
        cancelled=cancelled,
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    status: Optional[SessionStatus] = Query(None, description="Filter by status"),
    limit: int = Query(20, ge=1, le=200),
    service: OrchestrationService = Depends(get_service),
) -> SessionListResponse:
    """List sessions, most recent first."""
    sessions = service.list_sessions(status=status, limit=limit)
    return SessionListResponse(sessions=sessions, count=len(sessions))


# --- Catalog ---


@router.get("/workflows", response_model=WorkflowListResponse)
async def list_workflows(
    service: OrchestrationService = Depends(get_service),
) -> WorkflowListResponse:
    """List all workflow templates."""
    workflows = service.list_workflows()
    return WorkflowListResponse(workflows=workflows, count=len(workflows))


@router.get("/workflows/{workflow_id}", response_model=WorkflowTemplate)
async def get_workflow(
    workflow_id: str,
    service: OrchestrationService = Depends(get_service),
) -> WorkflowTemplate:
    """Get a full workflow template."""
    return service.get_workflow(workflow_id)


@router.get("/workflows/{workflow_id}/decisions", response_model=DecisionListResponse)
async def get_workflow_decisions(
    workflow_id: str,
    service: OrchestrationService = Depends(get_service),
) -> DecisionListResponse:
    """Decision points of a workflow, in phase order."""
    decisions = service.workflow_decisions(workflow_id)
    return DecisionListResponse(
        workflow_id=workflow_id,
        decisions=decisions,
        count=len(decisions),
    )


@router.get("/skills", response_model=SkillListResponse)
async def list_skills(
    limit: int = Query(50, ge=1, le=500, description="Max skills returned"),
    service: OrchestrationService = Depends(get_service),
) -> SkillListResponse:
    """List registered skills."""
    skills = service.list_skills()
    page = skills[:limit]
    return SkillListResponse(skills=page, count=len(page), total=len(skills))
