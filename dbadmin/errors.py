"""Error taxonomy of the workspace database administration layer.

Every failure the core raises is a subclass of DatabaseAdminError. Each class
carries a stable machine-readable ``error`` code and the HTTP status the REST
adapter renders it with, so callers can map failures without string matching.
"""

from typing import Any


class DatabaseAdminError(Exception):
    """Base class for all administration errors."""

    error = "database_admin_error"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_detail(self) -> dict[str, Any]:
        """Render as the API error envelope."""
        return {
            "error": self.error,
            "message": self.message,
            "details": self.details,
        }


class NotFound(DatabaseAdminError):
    """Table, column, row, routine or role does not exist (or is inactive)."""

    error = "not_found"
    status_code = 404


class AlreadyExists(DatabaseAdminError):
    error = "already_exists"
    status_code = 409


class AlreadyRevoked(DatabaseAdminError):
    """The role is already in a terminal state (revoked or expired)."""

    error = "already_revoked"
    status_code = 409


class InvalidFilter(DatabaseAdminError):
    error = "invalid_filter"
    status_code = 400


class InvalidRequest(DatabaseAdminError):
    error = "invalid_request"
    status_code = 400


class ForbiddenStatement(InvalidRequest):
    """SQL text contains a statement the console refuses to run."""

    error = "forbidden_statement"


class AmbiguousTarget(DatabaseAdminError):
    """An update addressed more than one row; nothing was applied."""

    error = "ambiguous_target"
    status_code = 409


class NoPrimaryKey(DatabaseAdminError):
    error = "no_primary_key"
    status_code = 409


class Timeout(DatabaseAdminError):
    error = "timeout"
    status_code = 504


class CollaboratorError(DatabaseAdminError):
    """The SQL engine rejected an operation. The message is the engine's own."""

    error = "collaborator_error"
    status_code = 502


class PartialFailure(CollaboratorError):
    """A multi-step schema change stopped midway.

    ``applied`` lists the steps that took effect before ``failed_step`` broke.
    """

    error = "partial_failure"

    def __init__(
        self,
        message: str,
        applied: list[str],
        failed_step: str | None,
        details: dict[str, Any] | None = None,
    ):
        merged = {"applied": list(applied), "failed_step": failed_step}
        merged.update(details or {})
        super().__init__(message, merged)
        self.applied = list(applied)
        self.failed_step = failed_step


class InvalidCredentials(CollaboratorError):
    error = "invalid_credentials"
    status_code = 401


class PermissionDenied(CollaboratorError):
    error = "permission_denied"
    status_code = 403
