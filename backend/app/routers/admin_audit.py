import math
from datetime import datetime

from fastapi import APIRouter, Depends, Query

from ..auth.gate import require_super_admin
from ..auth.identity import AuthContext
from ..dependencies import get_audit_logger
from ..domain.ports.audit import AuditLogQuery
from ..errors import NotFoundError, ValidationError
from ..schemas.audit_log import AuditLogListResponse, AuditLogPagination, AuditLogResponse
from ..services.audit.audit_service import AuditLogger

router = APIRouter(prefix="/admin/audit", tags=["admin-audit"])

MAX_PAGE_SIZE = 100


@router.get("/logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    action: str | None = Query(default=None, max_length=100),
    admin_id: str | None = Query(default=None, max_length=255),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    context: AuthContext = Depends(require_super_admin),
    audit: AuditLogger = Depends(get_audit_logger),
) -> AuditLogListResponse:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be before end_date")

    query = AuditLogQuery(
        society_id=context.identity.society_id,
        action=action,
        admin_id=admin_id,
        start=start_date,
        end=end_date,
    )
    entries, total = await audit.list_entries(query, limit=limit, offset=(page - 1) * limit)
    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(entry, from_attributes=True) for entry in entries],
        pagination=AuditLogPagination(
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.get("/logs/{entry_id}", response_model=AuditLogResponse)
async def get_audit_log(
    entry_id: str,
    context: AuthContext = Depends(require_super_admin),
    audit: AuditLogger = Depends(get_audit_logger),
) -> AuditLogResponse:
    entry = await audit.get_entry(entry_id)
    if entry is None or entry.society_id != context.identity.society_id:
        raise NotFoundError("Audit log entry not found")
    return AuditLogResponse.model_validate(entry, from_attributes=True)
