from fastapi import APIRouter, Depends, Request

from ..auth.gate import authenticate, request_metadata, require_admin
from ..auth.identity import AuthContext
from ..auth.permission_matrix import get_role_capabilities, get_role_permissions
from ..dependencies import get_audit_logger, get_session_manager
from ..domain.ports.session import AdminSession
from ..errors import NotFoundError
from ..schemas.admin import (
    ActiveSessionsResponse,
    AdminProfile,
    LoginResponse,
    MessageResponse,
    PermissionsResponse,
    SessionResponse,
    SessionStatusResponse,
    WingRestrictions,
)
from ..services.admin.session_service import SessionManager
from ..services.audit.audit_service import AuditLogger

router = APIRouter(prefix="/admin", tags=["admin"])

ADMIN_PANEL = "admin_panel"


def _profile(context: AuthContext) -> AdminProfile:
    identity = context.identity
    return AdminProfile(
        id=identity.subject_id,
        name=identity.display_name,
        email=identity.email,
        role=identity.role.value,
        society_id=identity.society_id,
        wing=identity.home_wing,
        assigned_wings=sorted(identity.assigned_wings),
    )


def _restrictions(context: AuthContext) -> WingRestrictions:
    allowed = context.scope.allowed_wings
    return WingRestrictions(
        wing_restricted=context.scope.wing_restricted,
        allowed_wings=sorted(allowed) if allowed is not None else None,
    )


def _session_response(session: AdminSession) -> SessionResponse:
    return SessionResponse.model_validate(session, from_attributes=True)


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    request: Request,
    context: AuthContext = Depends(authenticate),
    sessions: SessionManager = Depends(get_session_manager),
    audit: AuditLogger = Depends(get_audit_logger),
) -> LoginResponse:
    metadata = request_metadata(request)
    session = await sessions.create_session(context.identity, metadata)
    audit.record(
        context.identity,
        "admin_login",
        ADMIN_PANEL,
        {"session_id": session.session_id[:8]},
        **metadata,
    )
    role = context.role.value
    return LoginResponse(
        admin=_profile(context),
        permissions=get_role_permissions(role),
        capabilities=get_role_capabilities(role),
        restrictions=_restrictions(context),
        session=_session_response(session),
    )


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    context: AuthContext = Depends(authenticate),
    sessions: SessionManager = Depends(get_session_manager),
    audit: AuditLogger = Depends(get_audit_logger),
) -> MessageResponse:
    await sessions.invalidate_session(context.admin_id)
    audit.record(context.identity, "admin_logout", ADMIN_PANEL, {}, **request_metadata(request))
    return MessageResponse(message="Logged out successfully")


@router.get("/session/status", response_model=SessionStatusResponse)
async def session_status(
    context: AuthContext = Depends(authenticate),
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionStatusResponse:
    session = await sessions.touch(context.admin_id)
    if session is None:
        raise NotFoundError("No active session")
    return SessionStatusResponse(active=True, session=_session_response(session))


@router.get("/permissions", response_model=PermissionsResponse)
async def permissions(context: AuthContext = Depends(authenticate)) -> PermissionsResponse:
    role = context.role.value
    return PermissionsResponse(
        role=role,
        permissions=get_role_permissions(role),
        capabilities=get_role_capabilities(role),
        restrictions=_restrictions(context),
    )


@router.get("/sessions", response_model=ActiveSessionsResponse)
async def active_sessions(
    context: AuthContext = Depends(require_admin),
    sessions: SessionManager = Depends(get_session_manager),
) -> ActiveSessionsResponse:
    active = await sessions.list_active_sessions(context.identity.society_id)
    return ActiveSessionsResponse(
        sessions=[_session_response(session) for session in active],
        count=len(active),
    )
