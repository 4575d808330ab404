from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    id: str | None = None
    admin_id: str
    admin_name: str
    admin_role: str
    society_id: str
    action: str
    resource: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None

    class Config:
        from_attributes = True


class AuditLogPagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class AuditLogListResponse(BaseModel):
    logs: list[AuditLogResponse]
    pagination: AuditLogPagination
