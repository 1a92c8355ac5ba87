"""Shared fixtures: fast settings, a service per test, an API client."""

import json
import threading

import pytest
from fastapi.testclient import TestClient

from skill_agency.api.main import create_app
from skill_agency.config import Settings
from skill_agency.executor.step_runner import StepResult
from skill_agency.service import OrchestrationService


class GatedRunner:
    """Step runner that blocks every step until released."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls: list[tuple[str, str]] = []

    def run(self, step, context):
        self.calls.append((context.skill.id, step.id))
        self.started.set()
        self.release.wait(timeout=5)
        return StepResult()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        output_dir=tmp_path / "output",
        step_delay=0.0,
        critical_step_delay=0.0,
        step_timeout=5.0,
        session_timeout=None,
    )


@pytest.fixture
def service(settings) -> OrchestrationService:
    svc = OrchestrationService(settings)
    svc.load()
    return svc


@pytest.fixture
def gated_runner() -> GatedRunner:
    runner = GatedRunner()
    yield runner
    # Never leave a driver thread blocked after the test
    runner.release.set()


@pytest.fixture
def gated_service(settings, gated_runner) -> OrchestrationService:
    svc = OrchestrationService(settings, step_runner=gated_runner)
    svc.load()
    return svc


@pytest.fixture(autouse=True)
def _reset_sse_exit_event():
    """sse-starlette caches its shutdown event on the first event loop."""
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None


@pytest.fixture
def client(service):
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


@pytest.fixture
def parse_sse():
    """Decode a `data: <json>` event-stream body into a list of dicts."""

    def _parse(body: str) -> list[dict]:
        events = []
        for block in body.replace("\r\n", "\n").split("\n\n"):
            for line in block.split("\n"):
                if line.startswith("data: "):
                    events.append(json.loads(line[len("data: "):]))
        return events

    return _parse
