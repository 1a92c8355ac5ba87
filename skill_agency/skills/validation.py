"""Parameter validation and dry-run planning for skills.

Validation is synchronous and side-effect free. Every violation is
collected so the caller can report them all at once.
"""

import re
from typing import Any, Mapping, Optional

from .schemas import (
    DryRunResult,
    ExecutionPlan,
    ParameterSpec,
    ParameterType,
    PlanStep,
    SkillDefinition,
)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _check_value(spec: ParameterSpec, value: Any) -> Optional[str]:
    """Constraint violation for a present value, or None."""
    label = spec.display_name

    if spec.type == ParameterType.BOOLEAN and not isinstance(value, bool):
        return f"Invalid value for {label}: expected true or false"

    if spec.type == ParameterType.SELECT and value not in spec.options:
        return f"Invalid value for {label}: must be one of {', '.join(spec.options)}"

    if spec.validation and not re.search(spec.validation, str(value)):
        return f"Invalid value for {label}: does not match the required format"

    return None


def validate_parameters(
    skill: SkillDefinition,
    parameters: Mapping[str, Any],
) -> list[str]:
    """Validate parameters against a skill's declared ParameterSpecs.

    Returns a list of human-readable violations (empty when valid).
    Parameters the skill does not declare are ignored.
    """
    errors: list[str] = []
    for spec in skill.parameters:
        value = parameters.get(spec.name)
        if _is_missing(value):
            if spec.required:
                errors.append(f"Missing required parameter: {spec.display_name}")
            continue
        error = _check_value(spec, value)
        if error:
            errors.append(error)
    return errors


def resolve_parameters(
    skill: SkillDefinition,
    parameters: Mapping[str, Any],
) -> dict[str, Any]:
    """Parameters with declared defaults filled in for missing values."""
    resolved = dict(parameters)
    for spec in skill.parameters:
        if _is_missing(resolved.get(spec.name)) and spec.default is not None:
            resolved[spec.name] = spec.default
    return resolved


def format_seconds(seconds: float) -> str:
    """Compact duration label: '45s', '2m 30s'."""
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}m {rest}s" if rest else f"{minutes}m"


def build_plan(
    skill: SkillDefinition,
    step_delay: float = 0.0,
    critical_step_delay: float = 0.0,
) -> ExecutionPlan:
    """Project a skill's steps into an execution plan.

    The estimated time comes from the definition when declared, otherwise
    from the nominal per-step delays. Each step writes one output file.
    """
    steps = tuple(
        PlanStep(
            order=index + 1,
            step_id=step.id,
            step_name=step.name,
            critical=step.critical,
        )
        for index, step in enumerate(skill.steps)
    )
    if skill.estimated_time:
        estimated = skill.estimated_time
    else:
        estimated = format_seconds(
            sum(critical_step_delay if s.critical else step_delay for s in skill.steps)
        )
    return ExecutionPlan(
        steps=steps,
        estimated_total_time=estimated,
        estimated_output_files=len(skill.steps),
    )


def dry_run(
    skill: SkillDefinition,
    parameters: Mapping[str, Any],
    step_delay: float = 0.0,
    critical_step_delay: float = 0.0,
) -> DryRunResult:
    """Validate parameters and, if valid, preview the execution plan.

    Declared defaults are applied before validation.
    """
    errors = validate_parameters(skill, resolve_parameters(skill, parameters))
    if errors:
        return DryRunResult(valid=False, errors=errors)
    return DryRunResult(
        valid=True,
        dry_run_preview=build_plan(skill, step_delay, critical_step_delay),
    )
