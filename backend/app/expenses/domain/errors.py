class DomainError(Exception):
    """Base domain error with a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PermissionDenied(DomainError):
    """Raised when the user has insufficient permissions."""


class NotFound(DomainError):
    """Raised when a required entity is missing."""


class InvalidRequest(DomainError):
    """Raised when the submitted data is not valid."""


class InvalidTransition(DomainError):
    """Raised when an expense cannot move to the requested status."""


class SheetSyncFailed(DomainError):
    """Raised when the spreadsheet append fails and the approval is aborted."""
