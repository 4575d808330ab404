import math
import uuid

from fastapi import APIRouter, Depends, Query, Request

from ..auth.gate import AuthorizedAdmin, request_metadata, require_permission
from ..dependencies import get_audit_logger, get_join_request_port
from ..domain.ports.join_request import JoinRequestPort
from ..errors import ValidationError
from ..schemas.join_request import (
    JoinRequestListResponse,
    JoinRequestPagination,
    JoinRequestRejection,
    JoinRequestResponse,
)
from ..services.admin.join_request_service import PENDING, STATUSES, JoinRequestService
from ..services.admin.rate_limit_service import RateLimitResult, admin_rate_limit
from ..services.audit.audit_service import AuditLogger

router = APIRouter(prefix="/admin/join-requests", tags=["admin-join-requests"])

REVIEW_ACTION = "review_join_request"
REVIEW_LIMIT = 30
REVIEW_WINDOW_MS = 60_000
MAX_PAGE_SIZE = 100
ALL_STATUSES = "all"

require_read = require_permission("join_requests", "read")
require_review = require_permission("join_requests", "approve")
review_rate_limit = admin_rate_limit(REVIEW_ACTION, REVIEW_LIMIT, REVIEW_WINDOW_MS)


def get_join_request_service(
    port: JoinRequestPort = Depends(get_join_request_port),
) -> JoinRequestService:
    return JoinRequestService(port)


@router.get("", response_model=JoinRequestListResponse)
async def list_join_requests(
    status: str = Query(default=PENDING, max_length=16),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    admin: AuthorizedAdmin = Depends(require_read),
    service: JoinRequestService = Depends(get_join_request_service),
) -> JoinRequestListResponse:
    if status != ALL_STATUSES and status not in STATUSES:
        raise ValidationError(f"status must be one of: {', '.join((*STATUSES, ALL_STATUSES))}")

    requests, total = await service.list_requests(
        admin,
        None if status == ALL_STATUSES else status,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return JoinRequestListResponse(
        requests=[JoinRequestResponse.model_validate(item, from_attributes=True) for item in requests],
        pagination=JoinRequestPagination(
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.get("/{request_id}", response_model=JoinRequestResponse)
async def get_join_request(
    request_id: uuid.UUID,
    admin: AuthorizedAdmin = Depends(require_read),
    service: JoinRequestService = Depends(get_join_request_service),
) -> JoinRequestResponse:
    join_request = await service.get_request(admin, request_id)
    return JoinRequestResponse.model_validate(join_request, from_attributes=True)


@router.post("/{request_id}/approve", response_model=JoinRequestResponse)
async def approve_join_request(
    request_id: uuid.UUID,
    request: Request,
    admin: AuthorizedAdmin = Depends(require_review),
    _rate_limit: RateLimitResult = Depends(review_rate_limit),
    service: JoinRequestService = Depends(get_join_request_service),
    audit: AuditLogger = Depends(get_audit_logger),
) -> JoinRequestResponse:
    join_request = await service.approve(admin, request_id)
    audit.record(
        admin.identity,
        "approve_join_request",
        "join_requests",
        {
            "request_id": str(join_request.id),
            "user_id": join_request.applicant_subject_id,
            "wing": join_request.wing,
            "flat_number": join_request.flat_number,
        },
        **request_metadata(request),
    )
    return JoinRequestResponse.model_validate(join_request, from_attributes=True)


@router.post("/{request_id}/reject", response_model=JoinRequestResponse)
async def reject_join_request(
    request_id: uuid.UUID,
    payload: JoinRequestRejection,
    request: Request,
    admin: AuthorizedAdmin = Depends(require_review),
    _rate_limit: RateLimitResult = Depends(review_rate_limit),
    service: JoinRequestService = Depends(get_join_request_service),
    audit: AuditLogger = Depends(get_audit_logger),
) -> JoinRequestResponse:
    join_request = await service.reject(admin, request_id, payload.reason)
    audit.record(
        admin.identity,
        "reject_join_request",
        "join_requests",
        {
            "request_id": str(join_request.id),
            "user_id": join_request.applicant_subject_id,
            "reason": join_request.rejection_reason,
        },
        **request_metadata(request),
    )
    return JoinRequestResponse.model_validate(join_request, from_attributes=True)
