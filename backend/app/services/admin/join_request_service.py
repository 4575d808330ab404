import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from ...auth.gate import AuthorizedAdmin, filter_by_wing_access
from ...domain.ports.join_request import JoinRequestData, JoinRequestPort
from ...errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("oursociety.join_requests")

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
STATUSES = (PENDING, APPROVED, REJECTED)


class JoinRequestService:
    """Approve or reject resident join requests."""

    def __init__(
        self,
        port: JoinRequestPort,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.port = port
        self._clock = clock

    async def _load(self, admin: AuthorizedAdmin, request_id: uuid.UUID) -> JoinRequestData:
        join_request = await self.port.get(request_id)
        # Requests of other societies are reported as missing
        if join_request is None or join_request.society_id != admin.identity.society_id:
            raise NotFoundError("Join request not found")

        admin.ensure_wing_access(join_request.wing)
        return join_request

    async def _load_for_review(
        self, admin: AuthorizedAdmin, request_id: uuid.UUID
    ) -> JoinRequestData:
        join_request = await self._load(admin, request_id)
        if join_request.status != PENDING:
            raise ConflictError("Join request is not pending")
        return join_request

    async def list_requests(
        self,
        admin: AuthorizedAdmin,
        status: str | None = PENDING,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[JoinRequestData], int]:
        """Page through the society's requests the administrator may see.

        Wing-restricted administrators only see requests of their wings; the
        total counts what is visible to them. status None means every status.
        """
        requests = await self.port.list_by_society(admin.identity.society_id, status=status)
        visible = filter_by_wing_access(requests, admin.scope, lambda item: item.wing)
        return visible[offset:offset + limit], len(visible)

    async def get_request(self, admin: AuthorizedAdmin, request_id: uuid.UUID) -> JoinRequestData:
        return await self._load(admin, request_id)

    async def _save(
        self,
        admin: AuthorizedAdmin,
        request_id: uuid.UUID,
        status: str,
        rejection_reason: str | None = None,
    ) -> JoinRequestData:
        saved = await self.port.save_review(
            request_id,
            status=status,
            reviewed_by=admin.identity.subject_id,
            reviewed_at=self._clock(),
            rejection_reason=rejection_reason,
        )
        if saved is None:
            raise ConflictError("Join request is not pending")
        logger.info(
            "Join request %s %s by %s", request_id, status, admin.identity.subject_id
        )
        return saved

    async def approve(self, admin: AuthorizedAdmin, request_id: uuid.UUID) -> JoinRequestData:
        await self._load_for_review(admin, request_id)
        return await self._save(admin, request_id, APPROVED)

    async def reject(
        self,
        admin: AuthorizedAdmin,
        request_id: uuid.UUID,
        reason: str | None = None,
    ) -> JoinRequestData:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")
        await self._load_for_review(admin, request_id)
        return await self._save(admin, request_id, REJECTED, reason)
