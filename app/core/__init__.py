"""Core utilities: exceptions, security and the reservation write guard."""

from app.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    HoldConflict,
    InvalidHoldState,
    NotFoundError,
    PersistenceFailure,
    ValidationError,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "HoldConflict",
    "InvalidHoldState",
    "NotFoundError",
    "PersistenceFailure",
    "ValidationError",
]
