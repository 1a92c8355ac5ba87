"""Skill definition schemas.

A skill is a unit of work with declared parameters and ordered steps. Skills
run on their own (execute-skill) or as part of a workflow phase.
"""

import re
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from skill_agency.workflows.schemas import WireModel


class ParameterType(str, Enum):
    """Supported parameter input types."""

    TEXT = "text"
    BOOLEAN = "boolean"
    SELECT = "select"


class ParameterSpec(WireModel):
    """A single declared skill parameter."""

    name: str = Field(..., min_length=1, description="Key in the parameters mapping")
    type: ParameterType = Field(default=ParameterType.TEXT)
    label: str = Field(default="", description="Human-readable label, used in errors")
    required: bool = False
    validation: Optional[str] = Field(
        default=None, description="Regex the value must match (search semantics)"
    )
    options: tuple[str, ...] = Field(
        default=(), description="Allowed values (select parameters only)"
    )
    default: Any = None
    hint: str = Field(default="", description="Placeholder text for UI rendering")

    @field_validator("validation")
    @classmethod
    def _compilable(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid validation pattern {v!r}: {e}")
        return v

    @model_validator(mode="after")
    def _check_options(self) -> "ParameterSpec":
        if self.type == ParameterType.SELECT and not self.options:
            raise ValueError(f"Select parameter {self.name} needs options")
        return self

    @property
    def display_name(self) -> str:
        return self.label or self.name


class StepSpec(WireModel):
    """One step of a skill."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., description="Human-readable step name")
    critical: bool = Field(
        default=False,
        description="Critical steps get a longer nominal duration and UI emphasis",
    )


class SkillDefinition(WireModel):
    """Full definition of an executable skill."""

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    category: str = "general"
    parameters: tuple[ParameterSpec, ...] = ()
    steps: tuple[StepSpec, ...] = Field(..., min_length=1)
    estimated_time: str = ""

    @model_validator(mode="after")
    def _unique_names(self) -> "SkillDefinition":
        names = [p.name for p in self.parameters]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate parameter names in skill {self.id}")
        step_ids = [s.id for s in self.steps]
        if len(set(step_ids)) != len(step_ids):
            raise ValueError(f"Duplicate step ids in skill {self.id}")
        return self


class SkillSummary(WireModel):
    """Lightweight skill info for listing endpoints."""

    id: str
    name: str
    category: str
    step_count: int
    estimated_time: str


class PlanStep(WireModel):
    """One projected step of a dry run."""

    order: int
    step_id: str
    step_name: str
    critical: bool


class ExecutionPlan(WireModel):
    """Deterministic preview of what an execution would do."""

    steps: tuple[PlanStep, ...]
    estimated_total_time: str
    estimated_output_files: int


class DryRunResult(WireModel):
    """Validation outcome plus, when valid, the execution plan."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    dry_run_preview: Optional[ExecutionPlan] = None
