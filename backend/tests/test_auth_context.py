"""Tests for credential resolution and effective scope computation."""
import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import jwt
import pytest

from app.auth.context import AuthContextResolver
from app.auth.identity import AdministratorIdentity, EffectiveScope, compute_effective_scope
from app.auth.permission_matrix import Role
from app.errors import (
    AdministratorMisconfiguredError,
    AuthenticationError,
    DatabaseError,
    ExternalServiceError,
)
from app.security.token_inspection import (
    ExpiredTokenError,
    InvalidTokenError,
    JWTTokenVerifier,
)

SECRET = "resolver-test-secret"


def make_record(**overrides):
    data = {
        "subject_id": "user_123",
        "name": "Ravi",
        "email": "ravi@example.com",
        "society_id": "society-1",
        "wing": "B",
        "admin_role": "wing_chairman",
        "assigned_wings": ["A", "C"],
    }
    data.update(overrides)
    return SimpleNamespace(**data)


def make_resolver(record=None, *, subject="user_123", timeout_seconds=1.0):
    verifier = AsyncMock()
    verifier.verify = AsyncMock(return_value=subject)
    lookup = AsyncMock()
    lookup.find_administrator_by_subject = AsyncMock(return_value=record)
    resolver = AuthContextResolver(verifier, lookup, timeout_seconds=timeout_seconds)
    return resolver, verifier, lookup


def make_token(subject: str = "user_123", **claims) -> str:
    payload = {"sub": subject, "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, SECRET, algorithm="HS256")


class TestResolve:
    @pytest.mark.anyio
    async def test_resolves_identity_and_scope(self):
        resolver, verifier, lookup = make_resolver(make_record())

        context = await resolver.resolve("token")

        verifier.verify.assert_awaited_once_with("token")
        lookup.find_administrator_by_subject.assert_awaited_once_with("user_123")
        assert context.identity.role is Role.WING_CHAIRMAN
        assert context.identity.society_id == "society-1"
        assert context.identity.assigned_wings == frozenset({"A", "C"})
        assert context.scope == EffectiveScope(True, frozenset({"A", "C"}))

    @pytest.mark.anyio
    @pytest.mark.parametrize("credential", [None, "", "   "])
    async def test_missing_credential_is_rejected(self, credential):
        resolver, verifier, _ = make_resolver(make_record())
        with pytest.raises(AuthenticationError):
            await resolver.resolve(credential)
        verifier.verify.assert_not_awaited()

    @pytest.mark.anyio
    async def test_verifier_rejection_propagates_as_authentication_error(self):
        resolver, verifier, lookup = make_resolver(make_record())
        verifier.verify.side_effect = InvalidTokenError()
        with pytest.raises(AuthenticationError):
            await resolver.resolve("bad")
        lookup.find_administrator_by_subject.assert_not_awaited()

    @pytest.mark.anyio
    async def test_unreachable_identity_provider_is_external_service_error(self):
        resolver, verifier, lookup = make_resolver(make_record())
        verifier.verify.side_effect = ConnectionError("provider unreachable")
        with pytest.raises(ExternalServiceError, match="Unable to verify session token") as exc_info:
            await resolver.resolve("token")
        assert exc_info.value.status_code == 502
        lookup.find_administrator_by_subject.assert_not_awaited()

    @pytest.mark.anyio
    async def test_unknown_subject_is_rejected(self):
        resolver, _, _ = make_resolver(None)
        with pytest.raises(AuthenticationError, match="User not found"):
            await resolver.resolve("token")

    @pytest.mark.anyio
    async def test_non_admin_is_rejected(self):
        resolver, _, _ = make_resolver(make_record(admin_role=None))
        with pytest.raises(AuthenticationError, match="Admin privileges required"):
            await resolver.resolve("token")

    @pytest.mark.anyio
    async def test_admin_without_society_is_misconfigured(self):
        resolver, _, _ = make_resolver(make_record(society_id=None))
        with pytest.raises(AdministratorMisconfiguredError) as exc_info:
            await resolver.resolve("token")
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "ADMIN_MISCONFIGURED"

    @pytest.mark.anyio
    async def test_unknown_role_is_misconfigured_not_defaulted(self):
        resolver, _, _ = make_resolver(make_record(admin_role="treasurer"))
        with pytest.raises(AdministratorMisconfiguredError):
            await resolver.resolve("token")

    @pytest.mark.anyio
    async def test_misconfigured_is_an_authentication_error(self):
        resolver, _, _ = make_resolver(make_record(society_id=""))
        with pytest.raises(AuthenticationError):
            await resolver.resolve("token")

    @pytest.mark.anyio
    async def test_lookup_failure_is_database_error(self):
        resolver, _, lookup = make_resolver(make_record())
        lookup.find_administrator_by_subject.side_effect = ConnectionError("db down")
        with pytest.raises(DatabaseError):
            await resolver.resolve("token")

    @pytest.mark.anyio
    async def test_verifier_timeout_is_authentication_error(self):
        resolver, verifier, _ = make_resolver(make_record(), timeout_seconds=0.01)

        async def slow_verify(_credential):
            await asyncio.sleep(1)
            return "user_123"

        verifier.verify.side_effect = slow_verify
        with pytest.raises(AuthenticationError, match="timed out"):
            await resolver.resolve("token")

    @pytest.mark.anyio
    async def test_lookup_timeout_is_database_error(self):
        resolver, _, lookup = make_resolver(make_record(), timeout_seconds=0.01)

        async def slow_lookup(_subject):
            await asyncio.sleep(1)

        lookup.find_administrator_by_subject.side_effect = slow_lookup
        with pytest.raises(DatabaseError, match="timed out"):
            await resolver.resolve("token")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            AuthContextResolver(AsyncMock(), AsyncMock(), timeout_seconds=0)


class TestEffectiveScope:
    def _identity(self, role, **kwargs):
        return AdministratorIdentity(subject_id="s", role=role, society_id="soc", **kwargs)

    @pytest.mark.parametrize("role", [Role.SUPER_ADMIN, Role.ADMIN, Role.MODERATOR])
    def test_non_chairman_roles_are_unrestricted(self, role):
        scope = compute_effective_scope(self._identity(role, home_wing="A"))
        assert scope.wing_restricted is False
        assert scope.allowed_wings is None
        assert scope.permits("Z")

    def test_chairman_uses_assigned_wings(self):
        scope = compute_effective_scope(
            self._identity(Role.WING_CHAIRMAN, assigned_wings=frozenset({"A"}), home_wing="B")
        )
        assert scope.allowed_wings == frozenset({"A"})

    def test_chairman_without_assignment_falls_back_to_home_wing(self):
        scope = compute_effective_scope(self._identity(Role.WING_CHAIRMAN, home_wing="B"))
        assert scope.wing_restricted is True
        assert scope.allowed_wings == frozenset({"B"})

    def test_chairman_without_any_wing_is_denied_everything(self):
        scope = compute_effective_scope(self._identity(Role.WING_CHAIRMAN))
        assert scope.allowed_wings == frozenset()
        assert not scope.permits("A")

    def test_restricted_scope_denies_unknown_wing(self):
        scope = EffectiveScope(True, frozenset({"A"}))
        assert not scope.permits(None)
        assert scope.permits_all(["A", "A"])
        assert not scope.permits_all(["A", "B"])

    def test_identity_is_immutable(self):
        identity = self._identity(Role.ADMIN)
        with pytest.raises(AttributeError):
            identity.role = Role.SUPER_ADMIN

    def test_identity_requires_society(self):
        with pytest.raises(ValueError):
            AdministratorIdentity(subject_id="s", role=Role.ADMIN, society_id="")


class TestJWTTokenVerifier:
    @pytest.mark.anyio
    async def test_valid_token_yields_subject(self):
        verifier = JWTTokenVerifier(SECRET, algorithm="HS256")
        assert await verifier.verify(make_token("user_42")) == "user_42"

    @pytest.mark.anyio
    async def test_expired_token_is_rejected(self):
        verifier = JWTTokenVerifier(SECRET, algorithm="HS256")
        token = make_token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))
        with pytest.raises(ExpiredTokenError):
            await verifier.verify(token)

    @pytest.mark.anyio
    async def test_wrong_signature_is_rejected(self):
        verifier = JWTTokenVerifier("other-secret", algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            await verifier.verify(make_token())

    @pytest.mark.anyio
    async def test_malformed_token_is_rejected(self):
        verifier = JWTTokenVerifier(SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            await verifier.verify("not-a-jwt")

    @pytest.mark.anyio
    async def test_token_without_subject_is_rejected(self):
        verifier = JWTTokenVerifier(SECRET, algorithm="HS256")
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(minutes=5)}, SECRET, algorithm="HS256"
        )
        with pytest.raises(InvalidTokenError):
            await verifier.verify(token)

    @pytest.mark.anyio
    async def test_issuer_is_checked_when_configured(self):
        verifier = JWTTokenVerifier(SECRET, algorithm="HS256", issuer="https://id.example.com")
        with pytest.raises(InvalidTokenError):
            await verifier.verify(make_token(iss="https://evil.example.com"))
        assert await verifier.verify(make_token(iss="https://id.example.com")) == "user_123"

    @pytest.mark.anyio
    async def test_verifier_errors_are_authentication_errors(self):
        verifier = JWTTokenVerifier(SECRET, algorithm="HS256")
        with pytest.raises(AuthenticationError):
            await verifier.verify("")
