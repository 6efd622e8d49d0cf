"""Base class for errors that map onto an HTTP error envelope."""

from __future__ import annotations


class DomainError(Exception):
    """An expected failure carrying the status and message the client sees.

    Subclasses set ``status_code``; the API layer turns any DomainError into
    ``{"success": false, "error": message}`` with that status.
    """

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    status_code = 409
