"""Routes for the caller's Google calendar subscriptions."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from fam_calendar.calendar.oauth import list_subscriptions, update_subscription
from fam_calendar.core.database import get_session
from fam_calendar.core.errors import NotFound
from fam_calendar.core.identity import Identity, get_identity
from fam_calendar.models import VISIBILITIES, CalendarSubscription

router = APIRouter(prefix="/api/calendar/subscriptions", tags=["subscriptions"])


class SubscriptionUpdate(BaseModel):
    is_active: bool | None = None
    visibility: str | None = None


def _to_dict(subscription: CalendarSubscription) -> dict:
    return {
        "id": str(subscription.id),
        "google_calendar_id": subscription.google_calendar_id,
        "calendar_name": subscription.calendar_name,
        "calendar_color": subscription.calendar_color,
        "visibility": subscription.visibility,
        "is_active": subscription.is_active,
    }


@router.get("")
async def get_subscriptions(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """List the calendars of the caller's Google connection."""
    return [_to_dict(s) for s in list_subscriptions(session, identity.member_id)]


@router.patch("/{subscription_id}")
async def patch_subscription(
    subscription_id: UUID,
    update: SubscriptionUpdate,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Toggle a calendar on or off, or change who can see its events.

    Visibility is one of "owner", "adults" or "family".
    """
    if update.visibility is not None and update.visibility not in VISIBILITIES:
        raise HTTPException(status_code=422, detail="Invalid visibility")
    try:
        subscription = update_subscription(
            session,
            identity,
            subscription_id,
            is_active=update.is_active,
            visibility=update.visibility,
        )
    except NotFound:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return _to_dict(subscription)
