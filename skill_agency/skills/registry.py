"""Skill registry: loads skill definitions from YAML files.

Workflow phases reference skills by id. A reference with no registered
definition still runs: the registry synthesises a one-step definition so
orchestration never depends on every skill being described in detail.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml

from skill_agency.workflows.schemas import SkillRef

from .schemas import SkillDefinition, SkillSummary, StepSpec

logger = logging.getLogger(__name__)


class SkillRegistry:
    """Registry for skill definitions.

    Each file in definitions/ is named {skill_id}.yaml and holds one
    SkillDefinition.
    """

    def __init__(self, definitions_dir: Optional[Path] = None):
        self.definitions_dir = definitions_dir or (
            Path(__file__).parent / "definitions"
        )
        self._skills: dict[str, SkillDefinition] = {}
        self._loaded = False

    def load(self) -> None:
        """Load all skill definitions from YAML files."""
        if self._loaded:
            return

        if not self.definitions_dir.exists():
            logger.warning(f"Skill definitions directory missing: {self.definitions_dir}")
            self._loaded = True
            return

        for yaml_file in sorted(self.definitions_dir.glob("*.yaml")):
            try:
                with open(yaml_file, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
                if data is None:
                    continue
                skill = SkillDefinition.model_validate(data)
                self._skills[skill.id] = skill
                logger.debug(f"Loaded skill: {skill.id}")
            except Exception as e:
                logger.error(f"Failed to load skill {yaml_file}: {e}")

        logger.info(f"Loaded {len(self._skills)} skills from {self.definitions_dir}")
        self._loaded = True

    def get(self, skill_id: str) -> Optional[SkillDefinition]:
        """Get a skill definition by id."""
        self.load()
        return self._skills.get(skill_id)

    def resolve(self, ref: SkillRef) -> SkillDefinition:
        """Definition for a workflow skill reference.

        Unregistered references get a single-step definition named after
        the reference.
        """
        skill = self.get(ref.id)
        if skill is not None:
            return skill
        name = ref.name or ref.id
        return SkillDefinition(
            id=ref.id,
            name=name,
            description=f"Run {name}",
            steps=(StepSpec(id="execute", name=f"Execute {name}"),),
        )

    def list_all(self) -> list[SkillSummary]:
        self.load()
        return [
            SkillSummary(
                id=s.id,
                name=s.name,
                category=s.category,
                step_count=len(s.steps),
                estimated_time=s.estimated_time,
            )
            for s in self._skills.values()
        ]

    def list_definitions(self) -> list[SkillDefinition]:
        self.load()
        return list(self._skills.values())

    def count(self) -> int:
        self.load()
        return len(self._skills)
