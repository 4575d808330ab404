import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class JoinRequestRejection(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class JoinRequestResponse(BaseModel):
    id: uuid.UUID
    society_id: str
    applicant_subject_id: str
    wing: str | None = None
    flat_number: str | None = None
    status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class JoinRequestPagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class JoinRequestListResponse(BaseModel):
    requests: list[JoinRequestResponse]
    pagination: JoinRequestPagination
