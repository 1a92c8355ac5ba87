"""Workflow catalog: loads and serves workflow templates.

The catalog is read once at startup and never mutated afterwards, so it is
safe to share between concurrently running sessions.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from .schemas import WorkflowSummary, WorkflowTemplate

logger = logging.getLogger(__name__)


class WorkflowCatalog:
    """Registry of workflow templates keyed by id.

    The source is either a JSON file holding a list of templates, or a
    directory of JSON files with one template each. A malformed source is
    logged and leaves the catalog empty rather than failing the process.
    """

    def __init__(self, source: Optional[Path] = None):
        self.source = source or (
            Path(__file__).parent / "definitions" / "workflows.json"
        )
        self._workflows: dict[str, WorkflowTemplate] = {}
        self._loaded = False

    def load(self) -> dict[str, WorkflowTemplate]:
        """Load all workflow templates. Subsequent calls are no-ops."""
        if self._loaded:
            return self._workflows

        self._loaded = True

        if not self.source.exists():
            logger.error(f"Workflow source not found: {self.source}")
            return self._workflows

        if self.source.is_dir():
            entries = []
            for json_file in sorted(self.source.glob("*.json")):
                try:
                    with open(json_file, "r", encoding="utf-8") as f:
                        entries.append(json.load(f))
                except Exception as e:
                    logger.error(f"Failed to read workflow {json_file}: {e}")
        else:
            try:
                with open(self.source, "r", encoding="utf-8") as f:
                    entries = json.load(f)
            except Exception as e:
                logger.error(f"Could not load workflows from {self.source}: {e}")
                return self._workflows
            if not isinstance(entries, list):
                logger.error(
                    f"Could not load workflows from {self.source}: "
                    f"expected a list, got {type(entries).__name__}"
                )
                return self._workflows

        for entry in entries:
            self._add_entry(entry)

        logger.info(f"Loaded {len(self._workflows)} workflows from {self.source}")
        return self._workflows

    def _add_entry(self, entry: Any) -> None:
        try:
            workflow = WorkflowTemplate.model_validate(entry)
        except PydanticValidationError as e:
            key = entry.get("id", "?") if isinstance(entry, dict) else "?"
            logger.error(f"Skipping invalid workflow {key}: {e}")
            return
        if workflow.id in self._workflows:
            logger.warning(f"Duplicate workflow id {workflow.id}, keeping first")
            return
        self._workflows[workflow.id] = workflow

    def get(self, workflow_id: str) -> Optional[WorkflowTemplate]:
        """Get a workflow template by id."""
        self.load()
        return self._workflows.get(workflow_id)

    def list_all(self) -> list[WorkflowSummary]:
        """List workflow summaries in source order."""
        self.load()
        return [
            WorkflowSummary(
                id=w.id,
                name=w.name,
                description=w.description,
                complexity=w.complexity,
                estimated_time=w.estimated_time,
                phase_count=len(w.phases),
                skill_count=w.total_skills,
            )
            for w in self._workflows.values()
        ]

    def get_workflow_ids(self) -> list[str]:
        self.load()
        return list(self._workflows.keys())

    def count(self) -> int:
        self.load()
        return len(self._workflows)
