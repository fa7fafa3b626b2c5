"""
API routes for the Logbook HTTP server.

Every route resolves the caller from the session cookie (see the session
middleware in app.py) and passes the identity id explicitly to the core
services. Errors are raised as LogbookError subclasses and turned into
JSON responses by the handlers registered in app.py.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from ..access import ShareManager
from ..auth import AccountService, Identity, SessionResolver
from ..config import AuthConfig
from ..errors import UnauthenticatedError
from ..logs import LogService, LogView
from ..schema import FieldDef
from ..store import EntryRecord, MembershipRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Logbook"])


# --- Request/Response Models ---


class CredentialsRequest(BaseModel):
    """Login request."""

    username: str = Field("", description="Username (case-insensitive)")
    password: str = Field("", description="Password")


class RegisterRequest(CredentialsRequest):
    """Registration request."""

    email: str | None = Field(None, description="Optional email address")


class ChangePasswordRequest(BaseModel):
    current_password: str = Field("", description="Current password")
    new_password: str = Field("", description="New password")


class ChangeEmailRequest(BaseModel):
    email: str | None = Field(None, description="New email; blank clears it")


class FieldDefModel(BaseModel):
    """A field definition as sent by clients.

    ``type`` is left untyped so an unknown type reaches the schema validator
    and is reported with its field name.
    """

    name: str = ""
    type: Any = ""
    required: bool = False


class LogRequest(BaseModel):
    """Request to create or update a log."""

    name: str = Field("", description="Log name")
    fields: list[FieldDefModel] = Field(default_factory=list, description="Field schema")


class EntryRequest(BaseModel):
    """Request to create or update an entry."""

    fields: dict[str, Any] | None = Field(None, description="Field values")
    occurred_at: int | None = Field(None, description="When it happened (Unix ms)")


class SettingsResponse(BaseModel):
    allow_registration: bool


class UserResponse(BaseModel):
    id: str
    username: str
    email: str | None = None


class LogResponse(BaseModel):
    """Log response. share_token is only present for the owner."""

    id: str
    name: str
    fields: list[dict[str, Any]]
    is_owner: bool
    share_token: str | None = None
    created_at: int
    updated_at: int


class EntryResponse(BaseModel):
    id: str
    log_id: str
    user_id: str
    username: str
    fields: dict[str, Any]
    occurred_at: int
    created_at: int
    updated_at: int


class ShareTokenResponse(BaseModel):
    share_token: str


class MemberResponse(BaseModel):
    id: str
    user_id: str
    username: str
    created_at: int


class ShareInfoResponse(BaseModel):
    log_id: str
    log_name: str
    owner_name: str
    is_owner: bool
    already_member: bool


class JoinResponse(BaseModel):
    log_id: str
    log_name: str


# --- Conversions ---


def _user(identity: Identity) -> UserResponse:
    return UserResponse(id=identity.id, username=identity.username, email=identity.email)


def _log(view: LogView) -> LogResponse:
    return LogResponse(
        id=view.id,
        name=view.name,
        fields=[f.to_dict() for f in view.fields],
        is_owner=view.is_owner,
        share_token=view.share_token,
        created_at=view.created_at,
        updated_at=view.updated_at,
    )


def _entry(entry: EntryRecord) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        log_id=entry.log_id,
        user_id=entry.user_id,
        username=entry.username,
        fields=entry.fields,
        occurred_at=entry.occurred_at,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def _member(member: MembershipRecord) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        user_id=member.user_id,
        username=member.username,
        created_at=member.created_at,
    )


def _field_defs(fields: list[FieldDefModel]) -> list[FieldDef]:
    return [FieldDef(name=f.name, type=f.type, required=f.required) for f in fields]


# --- Dependencies ---


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_sessions(request: Request) -> SessionResolver:
    return request.app.state.sessions


def get_logs(request: Request) -> LogService:
    return request.app.state.logs


def get_shares(request: Request) -> ShareManager:
    return request.app.state.shares


def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.config.auth


def get_identity(request: Request) -> Identity:
    """The authenticated caller, resolved by the session middleware."""
    identity = getattr(request.state, "identity", None)
    if identity is None or identity.is_anonymous:
        raise UnauthenticatedError()
    return identity


def _set_session_cookie(response: Response, auth: AuthConfig, token: str) -> None:
    response.set_cookie(
        auth.cookie_name,
        token,
        max_age=auth.session_ttl_seconds,
        path="/",
        httponly=True,
        secure=auth.cookie_secure,
        samesite="lax",
    )


# --- Account Routes ---


@router.get("/settings", response_model=SettingsResponse)
async def settings(auth: AuthConfig = Depends(get_auth_config)):
    """Public server settings the frontend needs before login."""
    return SettingsResponse(allow_registration=auth.allow_registration)


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    accounts: AccountService = Depends(get_accounts),
    auth: AuthConfig = Depends(get_auth_config),
):
    """Create an account and log it in."""
    identity, token = await accounts.register(body.username, body.password, body.email)
    _set_session_cookie(response, auth, token)
    return _user(identity)


@router.post("/login", response_model=UserResponse)
async def login(
    body: CredentialsRequest,
    response: Response,
    accounts: AccountService = Depends(get_accounts),
    auth: AuthConfig = Depends(get_auth_config),
):
    identity, token = await accounts.login(body.username, body.password)
    _set_session_cookie(response, auth, token)
    return _user(identity)


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    sessions: SessionResolver = Depends(get_sessions),
    auth: AuthConfig = Depends(get_auth_config),
):
    """Delete the current session. Succeeds without one."""
    await sessions.logout(request.cookies.get(auth.cookie_name))
    response.delete_cookie(auth.cookie_name, path="/", httponly=True, samesite="lax")
    return {"status": "ok"}


@router.get("/me", response_model=UserResponse)
async def me(identity: Identity = Depends(get_identity)):
    return _user(identity)


@router.post("/me/password")
async def change_password(
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_identity),
    accounts: AccountService = Depends(get_accounts),
):
    await accounts.change_password(identity, body.current_password, body.new_password)
    return {"status": "ok"}


@router.post("/me/email", response_model=UserResponse)
async def change_email(
    body: ChangeEmailRequest,
    identity: Identity = Depends(get_identity),
    accounts: AccountService = Depends(get_accounts),
):
    return _user(await accounts.change_email(identity, body.email))


# --- Log Routes ---


@router.get("/logs", response_model=list[LogResponse])
async def list_logs(
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    """Logs the caller owns or has joined, ordered by name."""
    return [_log(view) for view in await logs.list_logs(identity.id)]


@router.post("/logs", response_model=LogResponse, status_code=201)
async def create_log(
    body: LogRequest,
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    view = await logs.create_log(identity.id, body.name, _field_defs(body.fields))
    return _log(view)


@router.get("/logs/{log_id}", response_model=LogResponse)
async def get_log(
    log_id: str,
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    return _log(await logs.get_log(log_id, identity.id))


@router.put("/logs/{log_id}", response_model=LogResponse)
async def update_log(
    log_id: str,
    body: LogRequest,
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    """Rename a log and replace its schema. Owner only."""
    view = await logs.update_log(log_id, identity.id, body.name, _field_defs(body.fields))
    return _log(view)


@router.delete("/logs/{log_id}", status_code=204)
async def delete_log(
    log_id: str,
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    await logs.delete_log(log_id, identity.id)
    return Response(status_code=204)


# --- Share Routes ---


@router.post("/logs/{log_id}/share", response_model=ShareTokenResponse)
async def issue_share_token(
    log_id: str,
    identity: Identity = Depends(get_identity),
    shares: ShareManager = Depends(get_shares),
):
    """Generate a share token, replacing any existing one."""
    return ShareTokenResponse(share_token=await shares.issue_token(log_id, identity.id))


@router.delete("/logs/{log_id}/share", status_code=204)
async def revoke_share_token(
    log_id: str,
    identity: Identity = Depends(get_identity),
    shares: ShareManager = Depends(get_shares),
):
    await shares.revoke_token(log_id, identity.id)
    return Response(status_code=204)


@router.get("/logs/{log_id}/shares", response_model=list[MemberResponse])
async def list_members(
    log_id: str,
    identity: Identity = Depends(get_identity),
    shares: ShareManager = Depends(get_shares),
):
    return [_member(m) for m in await shares.list_members(log_id, identity.id)]


@router.delete("/logs/{log_id}/shares/{share_id}", status_code=204)
async def remove_member(
    log_id: str,
    share_id: str,
    identity: Identity = Depends(get_identity),
    shares: ShareManager = Depends(get_shares),
):
    await shares.remove_member(log_id, identity.id, share_id)
    return Response(status_code=204)


@router.get("/share/{token}", response_model=ShareInfoResponse)
async def inspect_share(
    token: str,
    identity: Identity = Depends(get_identity),
    shares: ShareManager = Depends(get_shares),
):
    """Preview what a share link grants. Does not join."""
    info = await shares.inspect_token(token, identity.id)
    return ShareInfoResponse(
        log_id=info.log_id,
        log_name=info.log_name,
        owner_name=info.owner_name,
        is_owner=info.caller_is_owner,
        already_member=info.caller_already_member,
    )


@router.post("/share/{token}/join", response_model=JoinResponse, status_code=201)
async def join_share(
    token: str,
    response: Response,
    identity: Identity = Depends(get_identity),
    shares: ShareManager = Depends(get_shares),
):
    """Join a log through its share link.

    201 when a membership was created, 200 when the caller was already a member.
    """
    result = await shares.join(token, identity.id)
    if not result.created:
        response.status_code = 200
    return JoinResponse(log_id=result.log_id, log_name=result.log_name)


# --- Entry Routes ---


@router.get("/logs/{log_id}/entries", response_model=list[EntryResponse])
async def list_entries(
    log_id: str,
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    """Entries of a log, most recent occurrence first."""
    return [_entry(e) for e in await logs.list_entries(log_id, identity.id)]


@router.post("/logs/{log_id}/entries", response_model=EntryResponse, status_code=201)
async def create_entry(
    log_id: str,
    body: EntryRequest,
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    entry = await logs.create_entry(log_id, identity.id, body.fields, body.occurred_at)
    return _entry(entry)


@router.put("/logs/{log_id}/entries/{entry_id}", response_model=EntryResponse)
async def update_entry(
    log_id: str,
    entry_id: str,
    body: EntryRequest,
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    entry = await logs.update_entry(log_id, entry_id, identity.id, body.fields, body.occurred_at)
    return _entry(entry)


@router.delete("/logs/{log_id}/entries/{entry_id}", status_code=204)
async def delete_entry(
    log_id: str,
    entry_id: str,
    identity: Identity = Depends(get_identity),
    logs: LogService = Depends(get_logs),
):
    await logs.delete_entry(log_id, entry_id, identity.id)
    return Response(status_code=204)
