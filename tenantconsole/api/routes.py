"""HTTP route definitions for the tenant console."""

from __future__ import annotations

import logging

import httpx
import jwt
import psycopg
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from prometheus_client import Counter
from pydantic import BaseModel, EmailStr, Field

from ..config import get_settings
from ..domain.contracts import DeleteUserInput, InviteUserInput
from ..domain.errors import PermissionDenied, UserNotFound
from ..domain.invitations import InvitationStatus
from ..domain.profile import Profile, Role
from ..domain.service import UserAdminService
from ..gateway.errors import HostedServiceError
from ..security.rate_limiter import RateLimitPolicy, RouteRateLimits, build_rate_limiter
from ..security.tokens import bearer_token, decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

LAST_LOGIN_UPDATES = Counter(
    "console_last_login_updates_total", "Last-login updates by outcome", ["outcome"]
)
INVITATIONS_SENT = Counter(
    "console_invitations_total", "Invitations sent by kind and outcome", ["kind", "outcome"]
)


class UserIdRequest(BaseModel):
    """Body carrying the console user id, named as the dashboard sends it."""

    user_id: str | None = Field(default=None, alias="userId")


class DeleteUserRequest(UserIdRequest):
    auth_user_id: str | None = Field(default=None, alias="authUserId")


class InviteUserRequest(BaseModel):
    """Payload accepted when a superadmin or tenant admin invites a user."""

    email: EmailStr
    full_name: str = Field(..., min_length=1)
    role: Role
    tenant_id: str | None = None
    title: str | None = None

    class Config:
        use_enum_values = True


class OkResponse(BaseModel):
    ok: bool = True


class UserOkResponse(OkResponse):
    user_id: str = Field(..., alias="userId")

    class Config:
        populate_by_name = True


class InvitationStatusResponse(BaseModel):
    user_id: str
    status: InvitationStatus


settings = get_settings()
rate_limiter = build_rate_limiter(settings)
rate_limits = RouteRateLimits.from_settings(settings)


def get_service(request: Request) -> UserAdminService:
    """Resolve the `UserAdminService` stored on the FastAPI application state."""
    service: UserAdminService = request.app.state.user_admin_service
    return service


def get_current_profile(
    authorization: str | None = Header(default=None),
    service: UserAdminService = Depends(get_service),
) -> Profile:
    """Authenticate the caller's hosted-auth token and load their profile."""
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    try:
        claims = decode_access_token(token)
    except jwt.PyJWTError as exc:
        logger.info("rejected access token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token") from exc
    profile = service.get_profile_by_auth_user(claims["sub"])
    if profile is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="no profile for caller")
    return profile


def _enforce_rate_limit(policy: RateLimitPolicy, key: str) -> None:
    if not rate_limiter.allow(policy, key):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")


@router.post("/users/last-login", response_model=OkResponse)
def update_last_login(
    payload: UserIdRequest,
    actor: Profile = Depends(get_current_profile),
    service: UserAdminService = Depends(get_service),
) -> OkResponse:
    """Stamp the caller's last login time; the dashboard calls this once per sign-in."""
    if not payload.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID is required")
    _enforce_rate_limit(rate_limits.last_login, actor.id)
    try:
        service.record_last_login(payload.user_id, actor)
    except ValueError as exc:
        LAST_LOGIN_UPDATES.labels(outcome="rejected").inc()
        raise _http_error_from_value_error(exc) from exc
    except psycopg.Error as exc:
        LAST_LOGIN_UPDATES.labels(outcome="error").inc()
        logger.error("error updating last login for %s: %s", payload.user_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    LAST_LOGIN_UPDATES.labels(outcome="ok").inc()
    return OkResponse()


@router.post("/invitations", response_model=UserOkResponse)
def invite_user(
    payload: InviteUserRequest,
    actor: Profile = Depends(get_current_profile),
    service: UserAdminService = Depends(get_service),
) -> UserOkResponse:
    """Invite a user by email and create their profile."""
    _enforce_rate_limit(rate_limits.invite, actor.id)
    try:
        user_id = service.invite_user(
            InviteUserInput(
                email=payload.email,
                full_name=payload.full_name,
                role=payload.role,
                tenant_id=payload.tenant_id,
                title=payload.title,
            ),
            actor,
        )
    except ValueError as exc:
        INVITATIONS_SENT.labels(kind="new", outcome="rejected").inc()
        raise _http_error_from_value_error(exc) from exc
    except (HostedServiceError, httpx.HTTPError, psycopg.Error) as exc:
        INVITATIONS_SENT.labels(kind="new", outcome="error").inc()
        logger.error("error inviting %s: %s", payload.email, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    INVITATIONS_SENT.labels(kind="new", outcome="ok").inc()
    return UserOkResponse(user_id=user_id)


@router.post("/invitations/resend", response_model=UserOkResponse)
def resend_invitation(
    payload: UserIdRequest,
    actor: Profile = Depends(get_current_profile),
    service: UserAdminService = Depends(get_service),
) -> UserOkResponse:
    """Send a fresh invitation to a user who has not accepted yet."""
    if not payload.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID is required")
    _enforce_rate_limit(rate_limits.resend, payload.user_id)
    try:
        service.resend_invitation(payload.user_id, actor)
    except ValueError as exc:
        INVITATIONS_SENT.labels(kind="resend", outcome="rejected").inc()
        raise _http_error_from_value_error(exc) from exc
    except (HostedServiceError, httpx.HTTPError, psycopg.Error) as exc:
        INVITATIONS_SENT.labels(kind="resend", outcome="error").inc()
        logger.error("error resending invitation for %s: %s", payload.user_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    INVITATIONS_SENT.labels(kind="resend", outcome="ok").inc()
    return UserOkResponse(user_id=payload.user_id)


@router.get("/users/{user_id}/invitation", response_model=InvitationStatusResponse)
def get_invitation_status(
    user_id: str,
    actor: Profile = Depends(get_current_profile),
    service: UserAdminService = Depends(get_service),
) -> InvitationStatusResponse:
    try:
        invitation_status = service.get_invitation_status(user_id, actor)
    except ValueError as exc:
        raise _http_error_from_value_error(exc) from exc
    return InvitationStatusResponse(user_id=user_id, status=invitation_status)


@router.delete("/users", response_model=OkResponse)
def delete_user(
    payload: DeleteUserRequest,
    actor: Profile = Depends(get_current_profile),
    service: UserAdminService = Depends(get_service),
) -> OkResponse:
    """Delete a user's profile, memberships and auth account."""
    if not payload.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID is required")
    try:
        service.delete_user(
            DeleteUserInput(user_id=payload.user_id, auth_user_id=payload.auth_user_id), actor
        )
    except ValueError as exc:
        raise _http_error_from_value_error(exc) from exc
    except (HostedServiceError, httpx.HTTPError, psycopg.Error) as exc:
        logger.error("error deleting user %s: %s", payload.user_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return OkResponse()


def _http_error_from_value_error(exc: ValueError) -> HTTPException:
    status_code = status.HTTP_400_BAD_REQUEST
    if isinstance(exc, UserNotFound):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PermissionDenied):
        status_code = status.HTTP_403_FORBIDDEN
    return HTTPException(status_code=status_code, detail=str(exc))
