"""Tests for authorization decisions and the FastAPI guard dependencies."""
from unittest.mock import AsyncMock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.auth.gate import (
    AuthorizedAdmin,
    DenialReason,
    authenticate,
    authorize,
    enforce_access,
    filter_by_wing_access,
    request_metadata,
    require_admin,
    require_permission,
    require_super_admin,
)
from app.auth.permission_matrix import Role
from app.dependencies import get_auth_resolver
from app.errors import AuthenticationError, ForbiddenError
from app.main import register_exception_handlers
from tests.admin_helpers import make_context


class TestAuthorize:
    def test_wing_chairman_denied_on_other_wing(self):
        context = make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"}))

        decision = authorize(context, "maintenance", "approve", ["B"])

        assert decision.allowed is False
        assert decision.reason is DenialReason.OUTSIDE_ASSIGNED_WINGS

    def test_wing_chairman_allowed_on_own_wing(self):
        context = make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"}))

        decision = authorize(context, "maintenance", "approve", ["A"])

        assert decision.allowed is True
        assert decision.reason is DenialReason.GRANTED

    def test_every_target_wing_must_be_allowed(self):
        context = make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A", "B"}))

        assert authorize(context, "users", "read", ["A", "B"]).allowed is True
        assert authorize(context, "users", "read", ["A", "C"]).allowed is False

    def test_missing_target_wing_is_outside_restricted_scope(self):
        context = make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"}))

        assert authorize(context, "users", "read", [None]).allowed is False

    def test_permission_denial_wins_over_wing_check(self):
        context = make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"}))

        decision = authorize(context, "users", "delete", ["A"])

        assert decision.reason is DenialReason.INSUFFICIENT_PERMISSION

    def test_unrestricted_admin_ignores_target_wings(self):
        context = make_context(Role.ADMIN)

        assert authorize(context, "maintenance", "approve", ["Z"]).allowed is True

    def test_super_admin_is_allowed_anywhere(self):
        context = make_context(Role.SUPER_ADMIN)

        assert authorize(context, "society", "delete", ["Q"]).allowed is True


class TestEnforceAccess:
    def test_insufficient_permission_message(self):
        context = make_context(Role.MODERATOR)

        with pytest.raises(ForbiddenError) as exc_info:
            enforce_access(context, "maintenance", "approve")

        assert exc_info.value.message == "Insufficient permissions. Required: maintenance:approve"
        assert exc_info.value.status_code == 403

    def test_outside_wings_message(self):
        context = make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"}))

        with pytest.raises(ForbiddenError) as exc_info:
            enforce_access(context, "maintenance", "read", ["B"])

        assert exc_info.value.message == "Access denied: target is outside your assigned wings"
        assert exc_info.value.details["reason"] == "outside_assigned_wings"

    def test_authorized_admin_checks_loaded_targets(self):
        admin = AuthorizedAdmin(
            make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"})),
            "join_requests",
            "approve",
        )

        admin.ensure_wing_access("A")
        with pytest.raises(ForbiddenError):
            admin.ensure_wing_access("A", "B")


class TestFilterByWingAccess:
    def test_restricted_scope_drops_other_wings(self):
        scope = make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"})).scope
        items = [{"id": 1, "wing": "A"}, {"id": 2, "wing": "B"}, {"id": 3, "wing": None}]

        kept = filter_by_wing_access(items, scope, lambda item: item["wing"])

        assert [item["id"] for item in kept] == [1]

    def test_unrestricted_scope_keeps_everything(self):
        scope = make_context(Role.ADMIN).scope
        items = [{"wing": "A"}, {"wing": None}]

        assert filter_by_wing_access(items, scope, lambda item: item["wing"]) == items


def make_app(context=None, *, error: Exception | None = None) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)

    resolver = AsyncMock()
    if error is not None:
        resolver.resolve = AsyncMock(side_effect=error)
    else:
        resolver.resolve = AsyncMock(return_value=context)
    app.dependency_overrides[get_auth_resolver] = lambda: resolver

    @app.get("/whoami")
    async def whoami(ctx=Depends(authenticate)):
        return {"admin_id": ctx.admin_id, "role": ctx.role.value}

    @app.get("/maintenance")
    async def maintenance(admin: AuthorizedAdmin = Depends(require_permission("maintenance", "approve"))):
        return {"resource": admin.resource, "action": admin.action}

    @app.get("/admins-only")
    async def admins_only(ctx=Depends(require_admin)):
        return {"ok": True}

    @app.get("/super-only")
    async def super_only(ctx=Depends(require_super_admin)):
        return {"ok": True}

    return TestClient(app)


class TestGuardDependencies:
    def test_missing_header_is_401(self):
        client = make_app(make_context())

        response = client.get("/whoami")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_ERROR"

    def test_resolver_error_is_rendered(self):
        client = make_app(error=AuthenticationError("Invalid authentication token"))

        response = client.get("/whoami", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid authentication token"

    def test_authenticated_request_passes_context(self):
        client = make_app(make_context(Role.MODERATOR, subject_id="mod-1"))

        response = client.get("/whoami", headers={"Authorization": "Bearer ok"})

        assert response.status_code == 200
        assert response.json() == {"admin_id": "mod-1", "role": "moderator"}

    def test_require_permission_denies_with_403(self):
        client = make_app(make_context(Role.MODERATOR))

        response = client.get("/maintenance", headers={"Authorization": "Bearer ok"})

        assert response.status_code == 403
        body = response.json()["error"]
        assert body["code"] == "PERMISSION_DENIED"
        assert body["message"] == "Insufficient permissions. Required: maintenance:approve"

    def test_require_permission_admits_holder(self):
        client = make_app(make_context(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"})))

        response = client.get("/maintenance", headers={"Authorization": "Bearer ok"})

        assert response.status_code == 200

    @pytest.mark.parametrize(
        "role, expected",
        [(Role.SUPER_ADMIN, 200), (Role.ADMIN, 200), (Role.WING_CHAIRMAN, 403), (Role.MODERATOR, 403)],
    )
    def test_require_admin(self, role, expected):
        client = make_app(make_context(role))

        response = client.get("/admins-only", headers={"Authorization": "Bearer ok"})

        assert response.status_code == expected

    @pytest.mark.parametrize("role, expected", [(Role.SUPER_ADMIN, 200), (Role.ADMIN, 403)])
    def test_require_super_admin(self, role, expected):
        client = make_app(make_context(role))

        response = client.get("/super-only", headers={"Authorization": "Bearer ok"})

        assert response.status_code == expected


class TestRequestMetadata:
    def _request(self, headers, client=("127.0.0.1", 5000)):
        from starlette.requests import Request

        scope = {
            "type": "http",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": client,
        }
        return Request(scope)

    def test_prefers_forwarded_for(self):
        request = self._request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "User-Agent": "ua"})

        assert request_metadata(request) == {"ip_address": "203.0.113.9", "user_agent": "ua"}

    def test_falls_back_to_client_host(self):
        request = self._request({})

        assert request_metadata(request) == {"ip_address": "127.0.0.1", "user_agent": None}
