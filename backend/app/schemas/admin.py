from datetime import datetime

from pydantic import BaseModel


class AdminProfile(BaseModel):
    id: str
    name: str
    email: str | None = None
    role: str
    society_id: str
    wing: str | None = None
    assigned_wings: list[str] = []


class WingRestrictions(BaseModel):
    wing_restricted: bool
    allowed_wings: list[str] | None = None


class SessionResponse(BaseModel):
    session_id: str
    admin_id: str
    society_id: str
    admin_role: str
    created_at: datetime
    last_seen_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    is_active: bool
    ended_at: datetime | None = None

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    admin: AdminProfile
    permissions: list[str]
    capabilities: dict[str, list[str]]
    restrictions: WingRestrictions
    session: SessionResponse


class PermissionsResponse(BaseModel):
    role: str
    permissions: list[str]
    capabilities: dict[str, list[str]]
    restrictions: WingRestrictions


class SessionStatusResponse(BaseModel):
    active: bool
    session: SessionResponse


class ActiveSessionsResponse(BaseModel):
    sessions: list[SessionResponse]
    count: int


class MessageResponse(BaseModel):
    message: str
