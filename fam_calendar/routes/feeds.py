"""Feed management routes for the calendar settings page."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from fam_calendar.calendar.feeds import (
    create_feed,
    delete_feed,
    feed_to_dict,
    get_family_feed,
    list_feeds,
    regenerate_token,
    update_feed,
)
from fam_calendar.core.database import get_session
from fam_calendar.core.errors import NotFound
from fam_calendar.core.identity import Identity, get_identity

router = APIRouter(prefix="/api/calendar/feeds", tags=["feeds"])


class FeedFlags(BaseModel):
    include_tasks: bool | None = None
    include_meals: bool | None = None
    include_goals: bool | None = None
    include_events: bool | None = None
    include_birthdays: bool | None = None


class FeedCreate(FeedFlags):
    name: str = "Fam Calendar"
    member_id: UUID | None = None


class FeedUpdate(FeedFlags):
    name: str | None = None


def _flags(body: FeedFlags) -> dict:
    return body.model_dump(include=set(FeedFlags.model_fields), exclude_none=True)


def _load(session: Session, identity: Identity, feed_id: UUID):
    try:
        return get_family_feed(session, identity, feed_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Feed not found")


@router.get("")
async def get_feeds(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """List the family's calendar feeds with their subscribe URLs."""
    return [feed_to_dict(feed) for feed in list_feeds(session, identity)]


@router.post("", status_code=201)
async def post_feed(
    body: FeedCreate,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Create a feed; set ``member_id`` for a personal feed."""
    try:
        feed = create_feed(session, identity, name=body.name, member_id=body.member_id, **_flags(body))
    except NotFound:
        raise HTTPException(status_code=404, detail="Member not found")
    return feed_to_dict(feed)


@router.patch("/{feed_id}")
async def patch_feed(
    feed_id: UUID,
    body: FeedUpdate,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Rename a feed or change what it includes."""
    feed = _load(session, identity, feed_id)
    return feed_to_dict(update_feed(session, feed, name=body.name, **_flags(body)))


@router.post("/{feed_id}/regenerate")
async def post_regenerate(
    feed_id: UUID,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Issue a new token. Calendar apps using the old URL stop receiving updates."""
    feed = _load(session, identity, feed_id)
    return feed_to_dict(regenerate_token(session, feed))


@router.delete("/{feed_id}", status_code=204)
async def remove_feed(
    feed_id: UUID,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Delete a feed, revoking its URL."""
    feed = _load(session, identity, feed_id)
    delete_feed(session, feed)
