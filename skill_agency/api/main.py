"""Skill Agency API - workflow recommendation and orchestration service.

This API recommends and runs multi-step skill workflows:
- Objective analysis (free text -> workflow template)
- Workflow orchestration with streamed progress
- Single skill validation and execution
- Session status, cancellation and rollback
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from skill_agency import __version__
from skill_agency.api.routes import agency, skills
from skill_agency.config import Settings
from skill_agency.errors import (
    AgencyError,
    NotFoundError,
    SessionStateError,
    ValidationError,
)
from skill_agency.service import OrchestrationService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    service: OrchestrationService = app.state.service

    # Startup: load catalog and skill definitions once
    logger.info("Loading workflow templates...")
    service.catalog.load()
    logger.info(f"Loaded {service.catalog.count()} workflows")

    logger.info("Loading skill definitions...")
    service.skills.load()
    logger.info(f"Loaded {service.skills.count()} skills")

    logger.info(f"Keyword table covers {len(service.matcher.keywords)} workflows")
    logger.info("Skill Agency API ready")
    yield
    # Shutdown
    logger.info("Shutting down Skill Agency API")


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"valid": False, "errors": exc.errors},
    )


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": exc.message})


async def _state_conflict(request: Request, exc: SessionStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": exc.message})


async def _agency_error(request: Request, exc: AgencyError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=500, content={"detail": exc.message})


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[OrchestrationService] = None,
) -> FastAPI:
    """Build the FastAPI application around one OrchestrationService."""
    app = FastAPI(
        title="Skill Agency API",
        description="""
## Workflow Orchestration Service

Recommends a workflow template for a free-text objective, collects the
workflow's decisions and runs its skills phase by phase, streaming
progress as server-sent events (`data: <json>`).

### Key Endpoints

- `POST /api/agency/analyze` - Recommend a workflow
- `POST /api/agency/orchestrate` - Run a workflow (event stream)
- `POST /api/agency/status` - Session progress
- `POST /api/agency/rollback` - Roll back an active session
- `POST /api/execute-skill` - Run one skill (event stream)
- `POST /api/validate-skill` - Dry run
""",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service or OrchestrationService(settings)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-Id", "X-Execution-Id"],
    )

    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(SessionStateError, _state_conflict)
    app.add_exception_handler(AgencyError, _agency_error)

    app.include_router(agency.router)
    app.include_router(skills.router)

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "service": "Skill Agency API",
            "version": __version__,
            "description": "Skill workflow recommendation and orchestration",
            "docs": "/docs",
            "endpoints": {
                "analyze": "/api/agency/analyze",
                "orchestrate": "/api/agency/orchestrate",
                "workflows": "/api/agency/workflows",
                "skills": "/api/agency/skills",
                "execute": "/api/execute-skill",
                "validate": "/api/validate-skill",
                "executions": "/api/executions",
            },
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        svc: OrchestrationService = app.state.service
        return {
            "status": "healthy",
            "workflows_loaded": svc.catalog.count(),
            "skills_loaded": svc.skills.count(),
            "sessions": svc.sessions.count(),
            "executions": svc.execution_log.count(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "skill_agency.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
