"""Workflow template schemas.

A workflow is an ordered sequence of phases recommended for an objective.
Each phase groups skills (run in order) and the decision points the user
answers before orchestration starts.

Templates are immutable once loaded: models are frozen and sequences are
tuples. Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Frozen model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SkillRef(WireModel):
    """Reference to a skill held by the skill registry (opaque here)."""

    id: str = Field(..., min_length=1, description="Skill identifier")
    name: str = Field(default="", description="Human-readable skill name")

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_id(cls, data: Any) -> Any:
        """Allow phases to list skills as plain id strings."""
        if isinstance(data, str):
            return {"id": data, "name": data.replace("-", " ").title()}
        return data


class DecisionPoint(WireModel):
    """A question with enumerated options, answered before orchestration."""

    id: str = Field(..., min_length=1, description="Unique within the workflow")
    question: str = Field(..., description="Prompt shown to the user")
    options: tuple[str, ...] = Field(
        ..., min_length=1, description="Allowed answers; the first is the default"
    )

    @field_validator("options")
    @classmethod
    def _distinct_options(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError("Decision options must be distinct")
        return v

    @property
    def default_option(self) -> str:
        return self.options[0]


class Phase(WireModel):
    """A single phase within a workflow."""

    name: str = Field(..., description="Human-readable phase name")
    skills: tuple[SkillRef, ...] = Field(
        default=(), description="Skills executed in order within this phase"
    )
    decision_points: tuple[DecisionPoint, ...] = Field(
        default=(), description="Decisions collected for this phase"
    )


class WorkflowTemplate(WireModel):
    """Definition of a multi-phase skill workflow."""

    id: str = Field(..., min_length=1, description="Unique workflow identifier")
    name: str = Field(..., description="Human-readable name")
    description: str = Field(default="", description="What the workflow delivers")
    complexity: str = Field(default="", description="Rough complexity label")
    estimated_time: str = Field(default="", description="Rough duration label")
    phases: tuple[Phase, ...] = Field(..., description="Ordered phases")

    @model_validator(mode="after")
    def _unique_decision_ids(self) -> "WorkflowTemplate":
        """Decision ids key the user's answers, so they must not collide."""
        seen: set[str] = set()
        for phase in self.phases:
            for point in phase.decision_points:
                if point.id in seen:
                    raise ValueError(f"Duplicate decision point id: {point.id}")
                seen.add(point.id)
        return self

    @property
    def total_skills(self) -> int:
        return sum(len(phase.skills) for phase in self.phases)


class WorkflowSummary(WireModel):
    """Lightweight workflow info for listing endpoints."""

    id: str
    name: str
    description: str
    complexity: str
    estimated_time: str
    phase_count: int
    skill_count: int
