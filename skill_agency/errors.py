"""Error taxonomy for the orchestration service.

- ValidationError: malformed or missing input, reported with every violation
- NotFoundError: unknown workflow, skill, session or execution
- ExecutionError: a step or skill failed during live execution
- SessionStateError: operation not allowed in the session's current state
- TransportError: the client went away mid-stream (treated as cancellation)

Messages are human-readable and safe to return to clients.
"""

from typing import Optional


class AgencyError(Exception):
    """Base class for all service errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AgencyError):
    """Input failed validation. Carries the full list of violations."""

    def __init__(self, errors: list[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message or "; ".join(self.errors) or "Validation failed")


class NotFoundError(AgencyError):
    """A referenced workflow, skill, session or execution does not exist."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ExecutionError(AgencyError):
    """A step or skill failed while executing."""


class SessionStateError(AgencyError):
    """The requested transition is not valid from the session's state."""


class TransportError(AgencyError):
    """The consumer disconnected before the stream finished."""
