"""Error types raised by the service layer and rendered by the API."""

from __future__ import annotations


class PrisonRPError(Exception):
    """Base class for errors that should reach the API caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.message}


class ValidationError(PrisonRPError):
    status_code = 400


class InvalidTransitionError(ValidationError):
    """A workflow transition that is not allowed from the item's current status."""


class AuthorizationError(PrisonRPError):
    status_code = 403


class NotFoundError(PrisonRPError):
    status_code = 404


class ConflictError(PrisonRPError):
    status_code = 409


__all__ = [
    'PrisonRPError',
    'ValidationError',
    'InvalidTransitionError',
    'AuthorizationError',
    'NotFoundError',
    'ConflictError',
]
