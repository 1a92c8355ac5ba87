"""Objective matcher: recommends a workflow for a free-text objective.

Scoring is plain substring counting against a keyword table. Each keyword
found anywhere in the lower-cased objective adds one to its workflow's
score; keywords are counted independently, so overlapping matches count
("web app" also contains "app"). The highest score wins, ties go to the
workflow declared first, and an objective that matches nothing gets the
configured default workflow.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "full-stack-saas-mvp": ("saas", "startup", "web app", "product", "mvp"),
    "ml-data-pipeline": ("machine learning", "ml", "data pipeline", "ai model", "data"),
    "devops-infrastructure": ("infrastructure", "kubernetes", "docker", "cloud", "devops"),
    "mobile-app": ("mobile", "ios", "android", "app", "react native"),
    "backend-api": ("api", "backend", "server", "microservice", "rest"),
}


def load_keyword_table(path: Path) -> dict[str, tuple[str, ...]]:
    """Load a keyword table from YAML, preserving declaration order.

    Falls back to DEFAULT_KEYWORDS when the file is missing or malformed.
    """
    if not path.exists():
        logger.warning(f"Keyword table not found at {path}, using built-in table")
        return dict(DEFAULT_KEYWORDS)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except Exception as e:
        logger.error(f"Failed to load keyword table {path}: {e}")
        return dict(DEFAULT_KEYWORDS)

    if not isinstance(data, dict):
        logger.error(f"Keyword table {path} must be a mapping, using built-in table")
        return dict(DEFAULT_KEYWORDS)

    table: dict[str, tuple[str, ...]] = {}
    for workflow_id, keywords in data.items():
        if not isinstance(keywords, list):
            logger.warning(f"Ignoring keywords for {workflow_id}: expected a list")
            continue
        table[str(workflow_id)] = tuple(str(k).lower() for k in keywords)
    return table


class ObjectiveMatcher:
    """Deterministic keyword scorer over an ordered keyword table."""

    def __init__(
        self,
        default_workflow_id: str,
        keywords: Optional[dict[str, tuple[str, ...]]] = None,
    ):
        self.default_workflow_id = default_workflow_id
        self.keywords = dict(keywords if keywords is not None else DEFAULT_KEYWORDS)

    def score(self, objective: str) -> dict[str, int]:
        """Per-workflow keyword counts, in table order."""
        text = objective.lower()
        return {
            workflow_id: sum(1 for keyword in keywords if keyword in text)
            for workflow_id, keywords in self.keywords.items()
        }

    def match(self, objective: str) -> str:
        """Return the recommended workflow id for an objective."""
        best_id: Optional[str] = None
        best_score = 0
        for workflow_id, count in self.score(objective).items():
            # Strictly greater: on a tie the earlier workflow keeps the lead
            if count > best_score:
                best_id = workflow_id
                best_score = count

        if best_id is None:
            logger.debug(
                f"No keyword match for objective, defaulting to {self.default_workflow_id}"
            )
            return self.default_workflow_id

        logger.debug(f"Objective matched {best_id} with {best_score} keyword(s)")
        return best_id
