"""
User Session
============
Explicit sign-in context passed to every screen. Identity itself comes
from the hosted identity provider (OIDC claims); this module only turns
an identity into a session bound to the user's profile and role.

Identities that did not come from the provider (the local development
sign-in form) are marked unverified and can never open a doctor session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from dermasight.app.errors import UntrustedIdentity
from dermasight.app.schemas import Profile, Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """What the identity provider tells us about a signed-in user."""
    user_id: str
    email: str
    full_name: str = ""
    verified: bool = True


def identity_from_claims(claims: Mapping[str, Any]) -> Optional[Identity]:
    """Build an identity from OIDC claims (``st.user``); None if incomplete."""
    subject = claims.get("sub")
    email = claims.get("email")
    if not subject or not email:
        return None
    return Identity(
        user_id=str(subject),
        email=str(email),
        full_name=str(claims.get("name") or ""),
        verified=True,
    )


@dataclass(frozen=True)
class UserSession:
    user_id: str
    email: str
    role: Role

    @property
    def is_doctor(self) -> bool:
        return can_view_dashboard(self.role)


class ProfileStore(Protocol):
    def get(self, user_id: str) -> Optional[Profile]: ...

    def create(self, user_id: str, email: str, full_name: str = "", role: Role = Role.PATIENT) -> Profile: ...


class SessionManager:
    """Owns the current session between sign-in and sign-out."""

    def __init__(self, profiles: ProfileStore):
        self._profiles = profiles
        self.current: Optional[UserSession] = None

    def sign_in(self, identity: Identity) -> UserSession:
        profile = self._profiles.get(identity.user_id)
        if profile is not None and not identity.verified and profile.role is not Role.PATIENT:
            logger.warning("Refused unverified sign-in to %s profile %s", profile.role.value, profile.id)
            raise UntrustedIdentity("This account requires signing in through the identity provider")
        if profile is None:
            profile = self._profiles.create(
                identity.user_id, identity.email, identity.full_name or identity.email
            )
        self.current = UserSession(user_id=profile.id, email=profile.email, role=profile.role)
        logger.info("User %s signed in as %s", profile.id, profile.role.value)
        return self.current

    def sign_out(self) -> None:
        if self.current is not None:
            logger.info("User %s signed out", self.current.user_id)
        self.current = None


# ---------------------------------------------------------------------------
# Role decisions
# ---------------------------------------------------------------------------

BASE_NAV = ["Home", "Upload", "History", "About"]


def can_view_dashboard(role: Role) -> bool:
    if role is Role.DOCTOR:
        return True
    if role is Role.PATIENT:
        return False
    raise ValueError(f"Unhandled role: {role!r}")


def role_label(role: Role) -> str:
    if role is Role.DOCTOR:
        return "Doctor"
    if role is Role.PATIENT:
        return "Patient"
    raise ValueError(f"Unhandled role: {role!r}")


def nav_items(role: Role) -> list[str]:
    """Navigation entries; doctors get Dashboard before About."""
    items = list(BASE_NAV)
    if can_view_dashboard(role):
        items.insert(3, "Dashboard")
    return items + ["Profile"]
