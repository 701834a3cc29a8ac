"""Domain exceptions.

Managers and the execution pipeline raise these, never HTTP exceptions --
translation to status codes happens once, in the app's exception handlers.
The builtin bases (``ValueError``, ``LookupError``) let callers that only
care about the broad category catch them without importing this module.
"""

from __future__ import annotations


class SwarmDeskError(Exception):
    """Base class for all SwarmDesk domain errors."""

    status_code = 500
    title = "Internal server error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SwarmDeskError, ValueError):
    """Missing or malformed input."""

    status_code = 400
    title = "Missing required fields"


class NotFoundError(SwarmDeskError, LookupError):
    """Unknown session, worker or template."""

    status_code = 404
    title = "Not found"


class ConflictError(SwarmDeskError):
    """The requested transition is not allowed from the current state."""

    status_code = 409
    title = "Conflict"


class ConfigurationError(SwarmDeskError):
    """The owner has no active credential for the external CLI."""

    status_code = 400
    title = "Claude API key not configured"


class ProcessError(SwarmDeskError):
    """The external CLI could not be spawned or exited nonzero."""

    status_code = 500
    title = "Failed to execute swarm"


class StorageError(SwarmDeskError):
    """A persistence operation failed."""

    status_code = 500
    title = "Storage error"


class UnavailableError(SwarmDeskError):
    """The server is shutting down and refuses new executions."""

    status_code = 503
    title = "Service unavailable"
