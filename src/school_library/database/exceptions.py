"""
Base exceptions for the data access layer.

Every error raised by this package carries a stable machine-readable
``kind`` and the HTTP status code the REST layer reports for it.
"""


class RepositoryException(Exception):
    """Base exception for repository operations."""

    kind = "repository_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(RepositoryException):
    """Raised when an entity is not found."""

    kind = "not_found"
    status_code = 404


class StorageError(RepositoryException):
    """Raised when the database cannot be read or written."""

    kind = "storage_unavailable"
    status_code = 503
