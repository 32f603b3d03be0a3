# app/core/exceptions.py

from typing import Iterable, Optional


class ClearanceError(Exception):
    """Base exception for clearance workflow errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class NotFound(ClearanceError):
    """Raised when an application (or one of its subjects) does not exist."""

    def __init__(self, message: str = "Application not found"):
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=404,
        )


class Unauthorized(ClearanceError):
    """Raised when the acting role or reviewer is not the one the stage waits on."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        super().__init__(
            message=message,
            error_code="UNAUTHORIZED",
            status_code=403,
        )


class IncompleteVerification(ClearanceError):
    """Raised when a stage precondition is not met yet."""

    def __init__(self, message: str, missing: Iterable[str] = ()):
        self.missing = list(missing)
        if self.missing:
            message = f"{message} Outstanding: {', '.join(self.missing)}"
        super().__init__(
            message=message,
            error_code="INCOMPLETE_VERIFICATION",
            status_code=422,
        )


class InvalidTransition(ClearanceError):
    """Raised for terminal or corrupted applications and illegal moves."""

    def __init__(self, message: str, status: Optional[str] = None, error_code: str = "INVALID_TRANSITION"):
        self.status = status
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=409,
        )


class TransitionConflict(InvalidTransition):
    """Raised when another writer moved the application first."""

    def __init__(self, expected_status: str):
        super().__init__(
            message=f"Application is no longer in status '{expected_status}'.",
            status=expected_status,
            error_code="TRANSITION_CONFLICT",
        )


class DuplicateApplication(ClearanceError):
    """Raised when the student already applied for the same semester and department."""

    def __init__(self, message: str = "An application for this semester and department already exists."):
        super().__init__(
            message=message,
            error_code="DUPLICATE_APPLICATION",
            status_code=409,
        )
