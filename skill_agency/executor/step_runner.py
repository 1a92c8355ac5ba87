"""Step execution capability.

The skill executor hands each step to a StepRunner and reports progress
around it; how long a step takes and what it produces is the runner's
business. ManifestStepRunner is the built-in runner: it waits a nominal,
configurable duration (longer for critical steps) and records the step as a
JSON manifest in the execution's output directory. A real skill-runner
plugs in by implementing the same `run` method.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

from skill_agency.skills.schemas import SkillDefinition, StepSpec

from .schemas import utc_now

logger = logging.getLogger(__name__)


@dataclass
class StepContext:
    """Everything a runner needs to know about the step it is running."""
    execution_id: str
    skill: SkillDefinition
    parameters: dict[str, Any]
    step_index: int
    total_steps: int
    output_dir: Path
    session_id: Optional[str] = None
    level: Optional[str] = None
    persona: Optional[str] = None


@dataclass
class StepResult:
    success: bool = True
    files: list[str] = field(default_factory=list)
    outputs: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class StepRunner(Protocol):
    def run(self, step: StepSpec, context: StepContext) -> StepResult:
        ...


class ManifestStepRunner:
    """Nominal-duration runner that writes one manifest file per step."""

    def __init__(self, step_delay: float = 0.3, critical_step_delay: float = 0.6):
        self.step_delay = step_delay
        self.critical_step_delay = critical_step_delay

    def run(self, step: StepSpec, context: StepContext) -> StepResult:
        delay = self.critical_step_delay if step.critical else self.step_delay
        if delay > 0:
            time.sleep(delay)

        context.output_dir.mkdir(parents=True, exist_ok=True)
        manifest_path = context.output_dir / f"{context.step_index + 1:02d}-{step.id}.json"
        manifest = {
            "executionId": context.execution_id,
            "sessionId": context.session_id,
            "skillId": context.skill.id,
            "stepId": step.id,
            "stepName": step.name,
            "critical": step.critical,
            "order": context.step_index + 1,
            "parameters": context.parameters,
            "level": context.level,
            "persona": context.persona,
            "completedAt": utc_now(),
        }
        with open(manifest_path, "w") as f:
            json.dump(manifest, f, indent=2, default=str)

        logger.debug(f"[{context.execution_id}] Step {step.id} wrote {manifest_path}")
        return StepResult(
            success=True,
            files=[str(manifest_path)],
            outputs={step.id: str(manifest_path)},
        )
