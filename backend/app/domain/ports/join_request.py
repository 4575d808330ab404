from __future__ import annotations

from datetime import datetime
import uuid
from typing import Protocol


class JoinRequestData(Protocol):
    id: uuid.UUID
    society_id: str
    applicant_subject_id: str
    wing: str | None
    flat_number: str | None
    status: str
    reviewed_by: str | None
    reviewed_at: datetime | None
    rejection_reason: str | None
    created_at: datetime


class JoinRequestPort(Protocol):
    async def get(self, request_id: uuid.UUID) -> JoinRequestData | None:
        ...

    async def list_by_society(
        self, society_id: str, *, status: str | None = None
    ) -> list[JoinRequestData]:
        """Requests of one society, newest first; every status when status is None."""
        ...

    async def save_review(
        self,
        request_id: uuid.UUID,
        *,
        status: str,
        reviewed_by: str,
        reviewed_at: datetime,
        rejection_reason: str | None = None,
    ) -> JoinRequestData | None:
        """Apply a review to a pending request; None when it was no longer pending."""
        ...
