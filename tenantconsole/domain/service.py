"""User administration workflows behind the console's server routes."""

from __future__ import annotations

import logging
from datetime import timedelta

import httpx

from ..config import get_settings
from ..gateway.admin import AuthAdminGateway
from ..gateway.errors import HostedServiceError
from ..repository import UserRepository
from .contracts import DeleteUserInput, InviteUserInput
from .errors import InvitationRejected, PermissionDenied, UserNotFound
from .invitations import InvitationStatus, invitation_status
from .profile import Profile, Role, format_role, validate_role_assignment

logger = logging.getLogger(__name__)


class UserAdminService:
    """Coordinates the users table with the hosted auth service's admin API."""

    def __init__(self, repository: UserRepository, gateway: AuthAdminGateway) -> None:
        self._repository = repository
        self._gateway = gateway

    def get_profile_by_auth_user(self, auth_user_id: str) -> Profile | None:
        return self._repository.get_profile_by_auth_user(auth_user_id)

    def record_last_login(self, user_id: str, actor: Profile) -> None:
        """Stamp the user's last login; users may only stamp themselves unless superadmin."""
        if actor.id != user_id and not actor.is_superadmin:
            raise PermissionDenied("cannot update another user's last login")
        if not self._repository.touch_last_login(user_id):
            raise UserNotFound(user_id)

    def invite_user(self, payload: InviteUserInput, actor: Profile) -> str:
        """Invite a new user and create their profile, returning the new user id.

        The invited auth user is removed again if the profile cannot be
        stored, so a failed invite leaves nothing behind.
        """
        if actor.role == Role.tenant_admin.value and not payload.tenant_id:
            payload.tenant_id = actor.tenant_id
        self._authorize_role_grant(actor, payload.role, payload.tenant_id)
        validate_role_assignment(payload.role, payload.tenant_id)

        tenant_name = self._tenant_name(payload.tenant_id)
        user_id = self._send_invite(
            payload.email,
            {
                "full_name": payload.full_name,
                "role": payload.role,
                "tenant_id": payload.tenant_id,
                "tenant_name": tenant_name,
                "title": payload.title,
            },
        )

        try:
            self._repository.insert_profile(
                Profile(
                    id=user_id,
                    auth_user_id=user_id,
                    email=payload.email,
                    name=payload.full_name,
                    role=payload.role,
                    tenant_id=payload.tenant_id,
                    title=payload.title,
                )
            )
        except Exception:
            logger.exception("profile insert failed for invited user %s, rolling back", user_id)
            self._discard_auth_user(user_id)
            raise

        self._track_invitation(payload.email)
        return user_id

    def resend_invitation(self, user_id: str, actor: Profile) -> str:
        """Re-issue an invitation for an existing profile that has not accepted yet."""
        profile = self._require_profile(user_id)
        self._authorize_manage(actor, profile)

        invitation = self._repository.get_invitation(profile.email)
        if profile.has_accepted_invitation or (
            invitation is not None and invitation.accepted_at is not None
        ):
            raise ValueError("User has already accepted the invitation")

        # always start from a fresh auth user so old invite links stop working
        if profile.auth_user_id and self._gateway.get_user(profile.auth_user_id) is not None:
            self._gateway.delete_user(profile.auth_user_id)

        new_auth_user_id = self._send_invite(
            profile.email,
            {
                "full_name": profile.name,
                "role": profile.role,
                "tenant_id": profile.tenant_id,
                "tenant_name": self._tenant_name(profile.tenant_id),
                "title": profile.title,
                "user_role": format_role(profile.role),
            },
        )

        try:
            self._repository.set_auth_user_id(user_id, new_auth_user_id)
        except Exception:
            logger.exception("could not link auth user %s to %s", new_auth_user_id, user_id)
            self._discard_auth_user(new_auth_user_id)
            raise

        self._track_invitation(profile.email)
        return user_id

    def delete_user(self, payload: DeleteUserInput, actor: Profile) -> None:
        """Remove the profile with its memberships, then the auth user."""
        profile = self._require_profile(payload.user_id)
        self._authorize_manage(actor, profile)
        if actor.id == profile.id:
            raise PermissionDenied("users cannot delete themselves")

        self._repository.delete_user_cascade(payload.user_id)
        auth_user_id = payload.auth_user_id or profile.auth_user_id
        if auth_user_id:
            self._gateway.delete_user(auth_user_id)

    def get_invitation_status(self, user_id: str, actor: Profile) -> InvitationStatus:
        profile = self._require_profile(user_id)
        if actor.id != profile.id:
            self._authorize_manage(actor, profile)
        ttl = timedelta(hours=get_settings().invitation_ttl_hours)
        return invitation_status(self._repository.get_invitation(profile.email), ttl=ttl)

    def _require_profile(self, user_id: str) -> Profile:
        profile = self._repository.get_profile(user_id)
        if profile is None:
            raise UserNotFound(user_id)
        return profile

    def _authorize_role_grant(self, actor: Profile, role: str, tenant_id: str | None) -> None:
        if actor.is_superadmin:
            return
        if actor.role != Role.tenant_admin.value:
            raise PermissionDenied("only administrators can invite users")
        if role == Role.superadmin.value:
            raise PermissionDenied("tenant admins cannot grant superadmin")
        if tenant_id != actor.tenant_id:
            raise PermissionDenied("tenant admins can only invite into their own tenant")

    def _authorize_manage(self, actor: Profile, target: Profile) -> None:
        if actor.is_superadmin:
            return
        if (
            actor.role == Role.tenant_admin.value
            and actor.tenant_id is not None
            and target.tenant_id == actor.tenant_id
            and not target.is_superadmin
        ):
            return
        raise PermissionDenied("not allowed to manage this user")

    def _tenant_name(self, tenant_id: str | None) -> str | None:
        if not tenant_id:
            return None
        return self._repository.get_tenant_name(tenant_id)

    def _send_invite(self, email: str, data: dict) -> str:
        redirect_to = f"{get_settings().app_url.rstrip('/')}/auth/accept-invite"
        try:
            return self._gateway.invite_user_by_email(email, data=data, redirect_to=redirect_to)
        except HostedServiceError as exc:
            raise InvitationRejected(exc.message) from exc

    def _discard_auth_user(self, auth_user_id: str) -> None:
        try:
            self._gateway.delete_user(auth_user_id)
        except (HostedServiceError, httpx.HTTPError) as exc:
            logger.error("could not remove orphaned auth user %s: %s", auth_user_id, exc)

    def _track_invitation(self, email: str) -> None:
        try:
            self._repository.upsert_invitation(email)
        except Exception:
            logger.exception("error recording invitation for %s", email)
