"""Skill API routes: metadata, validation, live execution and history.

Endpoints:
    GET  /api/skill-metadata                 All skill definitions
    GET  /api/skill-metadata?skill={id}      One skill definition
    POST /api/validate-skill                 Validate parameters, preview the plan
    POST /api/execute-skill                  Execute a skill, stream its progress
    GET  /api/executions                     Execution history (most recent first)
    GET  /api/executions/{execution_id}      One execution record
    POST /api/executions/rollback            Mark a completed execution rolled back
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from skill_agency.api.deps import get_service
from skill_agency.api.streaming import event_stream
from skill_agency.executor.schemas import ExecutionRecord, ExecutionStatus
from skill_agency.service import OrchestrationService
from skill_agency.skills.schemas import DryRunResult, SkillDefinition
from skill_agency.workflows.schemas import WireModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["skills"])


class SkillRequest(WireModel):
    skill_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ExecuteSkillRequest(SkillRequest):
    level: Optional[str] = Field(None, description="Experience level, passed to the runner")
    persona: Optional[str] = Field(None, description="Persona, passed to the runner")


class SkillMetadataResponse(WireModel):
    skills: list[SkillDefinition]
    count: int


class ExecutionListResponse(WireModel):
    executions: list[ExecutionRecord]
    count: int


class ExecutionRollbackRequest(WireModel):
    rollback_token: str


@router.get("/skill-metadata")
async def skill_metadata(
    skill: Optional[str] = Query(None, description="Skill id; omit to list all"),
    service: OrchestrationService = Depends(get_service),
):
    """Full skill definitions, for building parameter forms."""
    if skill:
        return service.get_skill(skill)
    definitions = service.skills.list_definitions()
    return SkillMetadataResponse(skills=definitions, count=len(definitions))


@router.post("/validate-skill", response_model=DryRunResult)
async def validate_skill(
    request: SkillRequest,
    service: OrchestrationService = Depends(get_service),
) -> DryRunResult:
    """Dry run: validate parameters and preview the steps. No side effects."""
    return service.validate_skill(request.skill_id, request.parameters)


@router.post("/execute-skill")
async def execute_skill(
    request: ExecuteSkillRequest,
    service: OrchestrationService = Depends(get_service),
):
    """Execute a skill and stream started/step_progress/complete events.

    Invalid parameters are rejected with 400 before any event is sent.
    """
    execution_id, channel = service.start_skill_execution(
        request.skill_id,
        request.parameters,
        level=request.level,
        persona=request.persona,
    )
    return event_stream(channel, headers={"X-Execution-Id": execution_id})


@router.get("/executions", response_model=ExecutionListResponse)
async def list_executions(
    status: Optional[ExecutionStatus] = Query(None, description="Filter by status"),
    limit: int = Query(20, ge=1, le=200),
    service: OrchestrationService = Depends(get_service),
) -> ExecutionListResponse:
    """Execution history, most recent first."""
    executions = service.list_executions(status=status, limit=limit)
    return ExecutionListResponse(executions=executions, count=len(executions))


@router.get("/executions/{execution_id}", response_model=ExecutionRecord)
async def get_execution(
    execution_id: str,
    service: OrchestrationService = Depends(get_service),
) -> ExecutionRecord:
    return service.get_execution(execution_id)


@router.post("/executions/rollback", response_model=ExecutionRecord)
async def rollback_execution(
    request: ExecutionRollbackRequest,
    service: OrchestrationService = Depends(get_service),
) -> ExecutionRecord:
    """Mark the execution holding a rollback token as rolled back."""
    record = service.rollback_execution(request.rollback_token)
    logger.info(f"Execution {record.execution_id} rolled back")
    return record
