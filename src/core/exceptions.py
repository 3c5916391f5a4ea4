"""Custom exceptions and error codes."""

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Standardized error codes for the sync engine."""

    # Rejected locally, before any network call
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TODO_NOT_FOUND = "TODO_NOT_FOUND"

    # Remote failures
    NETWORK_ERROR = "NETWORK_ERROR"
    CONFLICT = "CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    @property
    def triggers_rollback(self) -> bool:
        """Whether an optimistic change must be discarded after this error."""
        return False


class ValidationError(AppException):
    """Input rejected before any network call."""

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
        )


class TodoNotFoundError(AppException):
    """Todo identity is not present in the local store."""

    def __init__(self, identity: object) -> None:
        super().__init__(
            error_code=ErrorCode.TODO_NOT_FOUND,
            message=f"Todo not found: {identity}",
            details={"identity": str(identity)},
        )


class NetworkError(AppException):
    """Request failed, timed out or the server could not process it."""

    def __init__(
        self,
        message: str = "Network error. Please try again later.",
        status_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(
            error_code=ErrorCode.NETWORK_ERROR,
            message=message,
            status_code=status_code,
            details=details,
        )

    @property
    def triggers_rollback(self) -> bool:
        return True


class ConflictError(AppException):
    """Server rejected a write (e.g. the item was already deleted)."""

    def __init__(
        self,
        message: str = "The server rejected the change.",
        status_code: int | None = 409,
        details: Any | None = None,
        error_code: ErrorCode = ErrorCode.CONFLICT,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=status_code,
            details=details,
        )

    @property
    def triggers_rollback(self) -> bool:
        return True


class AuthenticationError(ConflictError):
    """Session token missing, expired or rejected."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code=ErrorCode.UNAUTHORIZED,
        )
