from __future__ import annotations

from typing import Protocol, Sequence


class TokenVerifier(Protocol):
    """Verifies a bearer credential issued by the identity provider."""

    async def verify(self, credential: str) -> str:
        """Return the credential's subject id or raise AuthenticationError."""
        ...


class AdministratorRecord(Protocol):
    subject_id: str
    name: str | None
    email: str | None
    society_id: str | None
    wing: str | None
    admin_role: str | None
    assigned_wings: Sequence[str] | None


class AdministratorLookup(Protocol):
    async def find_administrator_by_subject(
        self, subject_id: str
    ) -> AdministratorRecord | None:
        ...
