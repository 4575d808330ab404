import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base

JOIN_REQUEST_STATUSES = ("pending", "approved", "rejected")


class JoinRequest(Base):
    __tablename__ = "join_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    society_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    applicant_subject_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    wing: Mapped[str | None] = mapped_column(String(32))
    flat_number: Mapped[str | None] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending", index=True
    )
    reviewed_by: Mapped[str | None] = mapped_column(String(255))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="valid_join_request_status",
        ),
    )

    @validates("status")
    def validate_status(self, key: str, value: str) -> str:
        if value not in JOIN_REQUEST_STATUSES:
            raise ValueError(
                f"Invalid status '{value}'. "
                f"Must be one of: {', '.join(JOIN_REQUEST_STATUSES)}"
            )
        return value
