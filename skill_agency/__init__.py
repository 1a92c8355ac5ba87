"""Skill Agency - workflow orchestration service.

This service recommends and runs multi-step skill workflows:
- Objective matching (free text -> workflow template)
- Decision collection (per-phase decision points)
- Skill execution with streamed step progress
- Session lifecycle (cancellation, rollback, status)
"""

__version__ = "0.1.0"
