"""
Custom exceptions for repository-related operations.

Every failure a repository surfaces to its callers is one of the classes below,
except store errors, which are re-raised exactly as the driver produced them
(see `classifier.py` for how those are recognised).
"""

from typing import Iterable

# canonical repository-level exception

class RepositoryError(Exception):
    """
    Base exception for repository errors.

    - message: human-friendly message
    - fields: optional list of field names related to the error (e.g., ['Id'])
    - error_code: canonical short code (e.g., 'not_found', 'timeout') used by callers
    """

    def __init__(self, message: str, *, fields: Iterable[str] | None = None,
                 error_code: str | None = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields) if fields else None
        self.error_code = error_code

    def __str__(self) -> str:
        base = self.message
        parts = []
        if self.fields:
            parts.append(f"fields: {', '.join(self.fields)}")
        if self.error_code:
            parts.append(f"code: {self.error_code}")
        if parts:
            return f"{base} ({'; '.join(parts)})"
        return base

    def to_payload(self) -> dict:
        """
        Return a JSON-serializable dict describing the error.
        Standard shape:
            {
                "detail": "A human-friendly message",
                "code": "not_found",           # optional canonical code
                "fields": ["Id"],              # optional
            }
        """
        payload = {"detail": self.message}
        if self.error_code:
            payload["code"] = self.error_code
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload


class NotFoundError(RepositoryError):
    def __init__(self, message: str = "Not found", *, fields: Iterable[str] | None = None):
        super().__init__(message, fields=fields, error_code="not_found")


class RepositoryConnectionError(RepositoryError, ConnectionError):
    """Raised when the connection factory could not open a connection to the store."""

    def __init__(self, message: str = "Store unavailable"):
        super().__init__(message, error_code="store_unavailable")


class RepositoryTimeoutError(RepositoryError, TimeoutError):
    """Raised when the outer timeout elapsed before a policy-wrapped action completed."""

    def __init__(self, message: str, *, repository: str | None = None):
        super().__init__(message, error_code="timeout")
        self.repository = repository


class RetriesExhaustedError(RepositoryError):
    """
    Raised from the retry callback once the attempt counter reaches the configured ceiling.
    """

    def __init__(self, message: str, *, repository: str | None = None, attempts: int | None = None):
        super().__init__(message, error_code="retries_exhausted")
        self.repository = repository
        self.attempts = attempts


class OperationCancelledError(RepositoryError):
    """Raised when a caller-supplied cancel event fires during a policy-wrapped action."""

    def __init__(self, message: str = "Operation cancelled", *, repository: str | None = None):
        super().__init__(message, error_code="cancelled")
        self.repository = repository


__all__ = [
    "RepositoryError",
    "NotFoundError",
    "RepositoryConnectionError",
    "RepositoryTimeoutError",
    "RetriesExhaustedError",
    "OperationCancelledError",
]
