"""Request dependencies."""

from fastapi import Request

from skill_agency.service import OrchestrationService


def get_service(request: Request) -> OrchestrationService:
    """The service instance created with the app."""
    return request.app.state.service
