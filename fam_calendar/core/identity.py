"""Request identity resolution.

Authentication itself happens upstream (the auth proxy or session layer
sets ``X-Auth-User-Id``). This module turns that user id into an explicit
``Identity`` value which routes pass down to every operation, so the sync
engine, timeline and OAuth code never look at request state themselves.
"""
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session, select

from fam_calendar.core.database import get_session
from fam_calendar.models import FamilyMember


@dataclass(frozen=True)
class Identity:
    """The signed-in user as a family member."""

    auth_user_id: str
    member_id: UUID
    family_id: UUID
    role: str = "adult"

    @property
    def is_adult(self) -> bool:
        return self.role in ("owner", "adult")


def resolve_identity(session: Session, auth_user_id: str) -> Identity | None:
    """Look up the family member record for an authenticated user."""
    member = session.exec(
        select(FamilyMember).where(FamilyMember.auth_user_id == auth_user_id)
    ).first()
    if member is None:
        return None
    return Identity(
        auth_user_id=auth_user_id,
        member_id=member.id,
        family_id=member.family_id,
        role=member.role,
    )


def get_optional_auth_user_id(x_auth_user_id: str | None = Header(default=None)) -> str | None:
    """Dependency returning the authenticated user id, or None when absent."""
    return x_auth_user_id or None


def get_auth_user_id(x_auth_user_id: str | None = Header(default=None)) -> str:
    """Dependency returning the authenticated user id, or 401."""
    if not x_auth_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_auth_user_id


def get_identity(
    auth_user_id: str = Depends(get_auth_user_id),
    session: Session = Depends(get_session),
) -> Identity:
    """Dependency resolving the caller's member identity, or 401."""
    identity = resolve_identity(session, auth_user_id)
    if identity is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return identity
