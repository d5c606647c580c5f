"""
Error taxonomy for L'Ordre.

Every error raised by the access-control core derives from ``LOrdreError`` and
carries the HTTP status it maps to. The API layer translates them exactly once;
anything that is not an ``LOrdreError`` becomes a generic 500.
"""

from __future__ import annotations


class LOrdreError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LOrdreError):
    """Missing required field, forbidden self-targeting, malformed value."""

    status_code = 400


class AuthenticationError(LOrdreError):
    """Missing, invalid or expired token; no authenticated actor."""

    status_code = 401


class AuthorizationError(LOrdreError):
    """Authenticated identity lacks the role the operation requires."""

    status_code = 403


class DependencyError(LOrdreError):
    """An identity-provider or store call failed."""

    status_code = 400


class IdentityProviderError(DependencyError):
    pass


class StoreError(DependencyError):
    pass


class NotFoundError(LOrdreError):
    status_code = 404


class SingletonViolationError(LOrdreError):
    """A second system-state record was about to be inserted."""

    status_code = 409


class AppendOnlyViolationError(LOrdreError):
    """An update or delete was attempted on an append-only record."""

    status_code = 409
