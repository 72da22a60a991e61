"""
Service error taxonomy.

Every failure a service raises on purpose is a ServiceError subclass carrying a
machine-readable ``kind`` and the HTTP status the routes map it to. Anything
else escaping a service is treated as an internal error by the caller.
"""

from __future__ import annotations

from flask import jsonify


class ServiceError(Exception):
    """Base class for expected, user-facing service failures."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError, ValueError):
    """400-level input problem. Raised before any storage access."""

    kind = "bad_request"
    status_code = 400


class UnauthenticatedError(ServiceError):
    kind = "unauthenticated"
    status_code = 401


class ForbiddenError(ServiceError):
    """Role or branch authorization failure."""

    kind = "forbidden"
    status_code = 403


class NotFoundError(ServiceError):
    """Referenced entity does not exist or is not visible to the principal."""

    kind = "not_found"
    status_code = 404


class ConflictError(ServiceError):
    """409-level business rule conflict (e.g., duplicate active pricing rule)."""

    kind = "conflict"
    status_code = 409


class InvalidTransitionError(ConflictError):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error. It indicates
    that the user attempted an operation that violates business rules.
    """

    kind = "invalid_transition"


class InternalError(ServiceError):
    """Unexpected collaborator failure, already rolled back and logged."""

    kind = "internal_error"
    status_code = 500


def error_response(exc: ServiceError):
    """Flask (response, status) pair for a service error."""
    return jsonify(exc.to_dict()), exc.status_code
