"""
Identity boundary tests.

Verifies:
- HTTP provider maps 200/401/5xx/transport errors
- Principal built from local role and branch assignments
- Inactive profiles and unknown roles rejected
"""

import httpx
import pytest

from autoshop.errors import ForbiddenError, InternalError, UnauthenticatedError
from autoshop.models import UserRoleAssignment
from autoshop.services.authorization_service import Role
from autoshop.services.identity_service import HttpIdentityProvider, load_principal

from conftest import create_user


def _provider(handler):
    return HttpIdentityProvider("https://idp.test/auth/v1/user", api_key="anon", transport=httpx.MockTransport(handler))


class TestHttpIdentityProvider:

    def test_valid_token(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer good"
            assert request.headers["apikey"] == "anon"
            return httpx.Response(200, json={"id": "abc-123", "email": "r@autoshop.test"})

        assert _provider(handler).verify_token("good") == {"id": "abc-123", "email": "r@autoshop.test"}

    def test_rejected_token(self):
        assert _provider(lambda request: httpx.Response(401, json={"msg": "invalid JWT"})).verify_token("bad") is None

    def test_provider_error(self):
        with pytest.raises(InternalError):
            _provider(lambda request: httpx.Response(503)).verify_token("any")

    def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>", headers={"Content-Type": "text/html"})

        with pytest.raises(InternalError, match="Identity provider unavailable"):
            _provider(handler).verify_token("any")

    def test_non_json_body_answers_json_500(self, app, client, db_session, monkeypatch):
        provider = _provider(lambda request: httpx.Response(200, text="<html>gateway</html>"))
        monkeypatch.setitem(app.extensions, "identity_provider", provider)

        resp = client.get("/api/job-orders", headers={"Authorization": "Bearer any"})

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Identity provider unavailable", "kind": "internal_error"}

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(InternalError, match="Identity provider unavailable"):
            _provider(handler).verify_token("any")


class TestLoadPrincipal:

    def test_builds_principal(self, db_session, identity_provider, branch_a, branch_b):
        create_user(db_session, identity_provider, "u-multi", ["R", "T"], [branch_a, branch_b])

        principal = load_principal("token-u-multi")

        assert principal.id == "u-multi"
        assert principal.roles == {Role.R, Role.T}
        assert principal.branch_ids == {branch_a.id, branch_b.id}

    def test_unknown_token(self, db_session):
        with pytest.raises(UnauthenticatedError):
            load_principal("nobody")

    def test_inactive_profile(self, db_session, identity_provider, branch_a):
        create_user(db_session, identity_provider, "u-off", ["R"], [branch_a], is_active=False)
        with pytest.raises(ForbiddenError, match="deactivated"):
            load_principal("token-u-off")

    def test_unknown_role_rejected(self, db_session, identity_provider, branch_a):
        create_user(db_session, identity_provider, "u-bad", ["R"], [branch_a])
        db_session.add(UserRoleAssignment(user_id="u-bad", role="ADMIN"))
        db_session.commit()

        with pytest.raises(ForbiddenError, match="Unknown role 'ADMIN'"):
            load_principal("token-u-bad")

    def test_no_roles_rejected(self, db_session, identity_provider, branch_a):
        create_user(db_session, identity_provider, "u-none", [], [branch_a])
        with pytest.raises(ForbiddenError):
            load_principal("token-u-none")
