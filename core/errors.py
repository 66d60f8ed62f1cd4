"""
Error taxonomy for account operations.

Every core operation either returns its payload or raises exactly one
``ApiError`` subclass.  The HTTP layer turns ``status_code`` + ``message``
+ ``details`` into the uniform error envelope (see ``api.middleware``).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ApiError(Exception):
    """Base class for every failure surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ApiError):
    """Missing or malformed input."""

    status_code = 400


class ConflictError(ApiError):
    """Username or email already taken."""

    status_code = 409

    def __init__(self, field: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"{field} already exists.", details)
        self.field = field


class NotFoundError(ApiError):
    status_code = 404


class AuthError(ApiError):
    """Bad credentials or an invalid / expired / reused / missing token."""

    status_code = 401


class DependencyError(ApiError):
    """An external collaborator (media store, database) failed."""

    status_code = 500


class StorageError(DependencyError):
    """The credential store timed out or the driver failed."""
