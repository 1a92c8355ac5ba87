"""Decision collection for workflow templates.

Missing selections default to the decision's first option. Only unknown
decision ids and values outside a decision's options are reported as
errors.
"""

from typing import Any, Mapping

from skill_agency.errors import ValidationError

from .schemas import DecisionPoint, WorkflowTemplate


def extract_decisions(workflow: WorkflowTemplate) -> list[DecisionPoint]:
    """All decision points of a workflow, in phase then declaration order."""
    return [point for phase in workflow.phases for point in phase.decision_points]


def validate_selections(
    decisions: Mapping[str, Any],
    points: list[DecisionPoint],
) -> list[str]:
    """Check user selections against decision points.

    Returns a list of violations (empty when valid).
    """
    by_id = {point.id: point for point in points}
    errors: list[str] = []
    for decision_id, value in decisions.items():
        point = by_id.get(decision_id)
        if point is None:
            errors.append(f"Unknown decision: {decision_id}")
            continue
        if value not in point.options:
            errors.append(
                f"Invalid option for {decision_id}: {value!r} "
                f"(expected one of: {', '.join(point.options)})"
            )
    return errors


def resolve_selections(
    decisions: Mapping[str, Any],
    points: list[DecisionPoint],
) -> dict[str, str]:
    """Validate selections and fill unanswered decisions with defaults.

    Raises:
        ValidationError: if any selection is unknown or out of options.
    """
    errors = validate_selections(decisions, points)
    if errors:
        raise ValidationError(errors)
    return {
        point.id: decisions.get(point.id, point.default_option) for point in points
    }


class DecisionCollector:
    """Bundles decision extraction and validation for one workflow."""

    def __init__(self, workflow: WorkflowTemplate):
        self.workflow = workflow
        self.points = extract_decisions(workflow)

    def validate(self, decisions: Mapping[str, Any]) -> list[str]:
        return validate_selections(decisions, self.points)

    def resolve(self, decisions: Mapping[str, Any]) -> dict[str, str]:
        return resolve_selections(decisions, self.points)
