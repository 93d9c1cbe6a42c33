"""
Error kinds raised by the FileDepot components.

Storage backends translate their own exceptions into InternalError, so nothing
from elasticsearch, redis or the filesystem reaches the API layer directly.
The API maps each kind onto a status code in filedepot.api.
"""


class FileDepotError(Exception):
    """Base class for all errors with a defined outcome for the caller"""

    message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthorized(FileDepotError):
    """Missing, unknown or expired token, or bad credentials. Never says which."""

    message = "Unauthorized"


class ValidationError(FileDepotError):
    """A request field is missing or malformed. Always names the field."""

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"Missing {field}")


class InvalidParent(FileDepotError):
    """The parent of a new node does not exist or is not a folder"""

    message = "Parent not found"


class NotFound(FileDepotError):
    """The item is absent, or present but not accessible to the caller"""

    message = "Not found"


class AlreadyExists(FileDepotError):
    message = "Already exist"


class InternalError(FileDepotError):
    """A storage layer failed. The cause is logged, not shown to the caller."""

    message = "Internal server error"
