# Overview: Bearer-token verification against the external identity provider and Principal loading.

"""
Identity Service

WHY: Credentials live with the external identity provider. This backend only
asks it "who owns this token?" and then builds the Principal from local
profile, role and branch assignment rows.

SECURITY:
- Role strings are validated into the Role enum here; an unknown role never
  reaches the service layer
- Inactive or missing profiles are rejected (403) even with a valid token
- Provider calls are bounded by IDENTITY_PROVIDER_TIMEOUT
"""

from __future__ import annotations

import logging
from typing import Iterable

import httpx
from flask import current_app

from ..extensions import db
from ..errors import ForbiddenError, InternalError, UnauthenticatedError
from ..models import UserProfile, UserRoleAssignment, UserBranchAssignment
from .authorization_service import Principal, Role


logger = logging.getLogger(__name__)


class IdentityProvider:
    """Verifies a bearer token. Returns {"id", "email"} or None when invalid."""

    def verify_token(self, token: str) -> dict | None:
        raise NotImplementedError


class HttpIdentityProvider(IdentityProvider):
    """
    Token verification over HTTP (GoTrue-style "/auth/v1/user" endpoint).

    200 -> identity payload, 401/403 -> invalid token, anything else -> error.
    """

    def __init__(self, url: str, *, api_key: str | None = None, timeout: float = 5.0, transport=None):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        # httpx transport override (httpx.MockTransport in tests)
        self.transport = transport

    @classmethod
    def from_config(cls, config) -> "HttpIdentityProvider":
        return cls(
            config["IDENTITY_PROVIDER_URL"],
            api_key=config.get("IDENTITY_PROVIDER_API_KEY"),
            timeout=config.get("IDENTITY_PROVIDER_TIMEOUT", 5.0),
        )

    def verify_token(self, token: str) -> dict | None:
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
                resp = client.get(self.url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Identity provider request failed: %s", exc)
            raise InternalError("Identity provider unavailable") from exc

        if resp.status_code in (401, 403):
            return None
        if resp.status_code != 200:
            logger.error("Identity provider returned unexpected status %s", resp.status_code)
            raise InternalError("Identity provider unavailable")

        try:
            data = resp.json()
        except ValueError:
            logger.error("Identity provider returned a non-JSON body (%s bytes)", len(resp.content))
            raise InternalError("Identity provider unavailable")
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return {"id": str(data["id"]), "email": data.get("email")}


def get_identity_provider() -> IdentityProvider:
    provider = current_app.extensions.get("identity_provider")
    if provider is None:
        provider = HttpIdentityProvider.from_config(current_app.config)
        current_app.extensions["identity_provider"] = provider
    return provider


def principal_from_records(
    user_id: str,
    role_values: Iterable[str],
    branch_ids: Iterable[int],
    email: str | None = None,
) -> Principal:
    """
    Build a Principal from raw assignment values.

    Raises ValueError on an unknown role or when no role is assigned.
    """
    roles = frozenset(Role.parse(value) for value in role_values)
    return Principal(id=user_id, roles=roles, branch_ids=frozenset(int(b) for b in branch_ids), email=email)


def load_principal(token: str) -> Principal:
    """
    Resolve a bearer token to a Principal.

    Raises:
        UnauthenticatedError: token rejected by the identity provider
        ForbiddenError: profile missing/inactive, or role assignments invalid
        InternalError: identity provider unreachable
    """
    identity = get_identity_provider().verify_token(token)
    if not identity:
        raise UnauthenticatedError("Invalid or expired token")

    user_id = identity["id"]
    profile = db.session.get(UserProfile, user_id)
    if profile is None:
        raise ForbiddenError("User profile not found")
    if not profile.is_active:
        raise ForbiddenError("User account is deactivated")

    role_values = [
        row.role
        for row in db.session.query(UserRoleAssignment).filter_by(user_id=user_id).order_by(UserRoleAssignment.id)
    ]
    branch_ids = [
        row.branch_id
        for row in db.session.query(UserBranchAssignment).filter_by(user_id=user_id)
    ]

    try:
        return principal_from_records(user_id, role_values, branch_ids, email=identity.get("email") or profile.email)
    except ValueError as exc:
        logger.warning("Rejected principal for user %s: %s", user_id, exc)
        raise ForbiddenError(f"Invalid role assignment: {exc}")
