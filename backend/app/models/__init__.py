from .base import Base
from .user import User
from .join_request import JoinRequest
from .admin_audit_log import AdminAuditLog

__all__ = [
    "Base",
    "User",
    "JoinRequest",
    "AdminAuditLog",
]
