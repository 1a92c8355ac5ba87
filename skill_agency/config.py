"""Service configuration.

Values default from environment variables so a deployment can tune the
executor without code changes. Tests build Settings directly.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

PACKAGE_DIR = Path(__file__).parent


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def _env_path(name: str, default: Path) -> Path:
    raw = os.environ.get(name)
    return Path(raw) if raw else default


class Settings(BaseModel):
    """Runtime settings for the orchestration service."""

    workflows_path: Path = Field(
        default=PACKAGE_DIR / "workflows" / "definitions" / "workflows.json",
        description="JSON file (list of workflow templates) loaded at startup",
    )
    skills_dir: Path = Field(
        default=PACKAGE_DIR / "skills" / "definitions",
        description="Directory of skill definition YAML files",
    )
    keywords_path: Path = Field(
        default=PACKAGE_DIR / "workflows" / "keywords.yaml",
        description="Objective keyword table (workflow id -> keywords)",
    )
    default_workflow_id: str = Field(
        default="full-stack-saas-mvp",
        description="Recommendation returned when no keyword matches",
    )
    output_dir: Path = Field(
        default=Path("skill-output"),
        description="Root directory for step manifests written during execution",
    )

    # Nominal step timing (placeholder for real skill-runner completion signals)
    step_delay: float = Field(default=0.3, ge=0)
    critical_step_delay: float = Field(default=0.6, ge=0)

    # Timeouts; None disables
    step_timeout: Optional[float] = Field(default=60.0, gt=0)
    session_timeout: Optional[float] = Field(default=1800.0, gt=0)

    phase_concurrency: int = Field(
        default=1, ge=1,
        description="Max skills run concurrently within a phase (1 = sequential)",
    )
    channel_max_events: int = Field(
        default=256, ge=1,
        description="Bound on buffered progress events per stream",
    )
    channel_put_timeout: float = Field(
        default=10.0, gt=0,
        description="Seconds a producer waits on a full channel before treating "
        "the consumer as disconnected",
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        defaults = cls()
        step_timeout = _env_float("AGENCY_STEP_TIMEOUT", defaults.step_timeout or 0)
        session_timeout = _env_float(
            "AGENCY_SESSION_TIMEOUT", defaults.session_timeout or 0
        )
        return cls(
            workflows_path=_env_path("AGENCY_WORKFLOWS_PATH", defaults.workflows_path),
            skills_dir=_env_path("AGENCY_SKILLS_DIR", defaults.skills_dir),
            keywords_path=_env_path("AGENCY_KEYWORDS_PATH", defaults.keywords_path),
            default_workflow_id=os.environ.get(
                "AGENCY_DEFAULT_WORKFLOW", defaults.default_workflow_id
            ),
            output_dir=_env_path("AGENCY_OUTPUT_DIR", defaults.output_dir),
            step_delay=_env_float("AGENCY_STEP_DELAY", defaults.step_delay),
            critical_step_delay=_env_float(
                "AGENCY_CRITICAL_STEP_DELAY", defaults.critical_step_delay
            ),
            # 0 in the environment disables the timeout
            step_timeout=step_timeout or None,
            session_timeout=session_timeout or None,
            phase_concurrency=_env_int(
                "AGENCY_PHASE_CONCURRENCY", defaults.phase_concurrency
            ),
            channel_max_events=_env_int(
                "AGENCY_CHANNEL_MAX_EVENTS", defaults.channel_max_events
            ),
            channel_put_timeout=_env_float(
                "AGENCY_CHANNEL_PUT_TIMEOUT", defaults.channel_put_timeout
            ),
        )
