"""Error taxonomy shared by the workflow, pool and execution layers.

Each class carries the HTTP status the API layer answers with; the services
themselves never import FastAPI.
"""


class SQLGateError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SQLGateError):
    """Malformed submission. Not retried."""

    status_code = 400


class NotFoundError(SQLGateError):
    status_code = 404


class PermissionDeniedError(SQLGateError):
    """The authorization collaborator said no."""

    status_code = 403


class InvalidStateError(SQLGateError):
    """Operation attempted from the wrong lifecycle state."""

    status_code = 409


class NotRollbackCapableError(SQLGateError):
    status_code = 409


class ConnectivityError(SQLGateError):
    """Target unreachable or pool exhausted. Callers may retry explicitly."""

    status_code = 503


class RollbackError(SQLGateError):
    """Restore from a backup snapshot failed; the table needs an operator."""

    status_code = 500
