"""Calendar feed management.

Feeds are looked up by their token alone. Tokens are random hex strings,
unique across live feeds and never handed out again once a feed is
deleted or its token regenerated.
"""
import logging
import secrets
from uuid import UUID

from sqlmodel import Session, select

from fam_calendar.core.clock import utcnow
from fam_calendar.core.config import settings
from fam_calendar.core.errors import NotFound
from fam_calendar.core.identity import Identity
from fam_calendar.models import CalendarFeed, FamilyMember, RetiredFeedToken

logger = logging.getLogger(__name__)

FEED_FLAGS = ("include_tasks", "include_meals", "include_goals", "include_events", "include_birthdays")
MAX_TOKEN_ATTEMPTS = 5


def token_prefix(token: str) -> str:
    """Loggable form of a feed token."""
    return token[:8] + "..."


def clean_token(raw: str) -> str:
    """Strip a trailing ``.ics`` that calendar apps like to append."""
    if raw.lower().endswith(".ics"):
        return raw[: -len(".ics")]
    return raw


def _token_taken(session: Session, token: str) -> bool:
    live = session.exec(select(CalendarFeed.id).where(CalendarFeed.token == token)).first()
    return live is not None or session.get(RetiredFeedToken, token) is not None


def new_feed_token(session: Session) -> str:
    for _ in range(MAX_TOKEN_ATTEMPTS):
        token = secrets.token_hex(settings.feed_token_bytes)
        if not _token_taken(session, token):
            return token
        logger.warning("Feed token collision, generating another")
    raise RuntimeError("Could not generate a unique feed token")


def get_feed_by_token(session: Session, token: str) -> CalendarFeed | None:
    return session.exec(select(CalendarFeed).where(CalendarFeed.token == token)).first()


def list_feeds(session: Session, identity: Identity) -> list[CalendarFeed]:
    return list(
        session.exec(
            select(CalendarFeed)
            .where(CalendarFeed.family_id == identity.family_id)
            .order_by(CalendarFeed.created_at)
        ).all()
    )


def get_family_feed(session: Session, identity: Identity, feed_id: UUID) -> CalendarFeed:
    feed = session.get(CalendarFeed, feed_id)
    if feed is None or feed.family_id != identity.family_id:
        raise NotFound("Feed not found")
    return feed


def create_feed(
    session: Session,
    identity: Identity,
    name: str = "Fam Calendar",
    member_id: UUID | None = None,
    **flags: bool,
) -> CalendarFeed:
    """Create a family feed, or a personal one when ``member_id`` is set."""
    if member_id is not None:
        member = session.get(FamilyMember, member_id)
        if member is None or member.family_id != identity.family_id:
            raise NotFound("Member not found")

    feed = CalendarFeed(
        family_id=identity.family_id,
        member_id=member_id,
        token=new_feed_token(session),
        name=name,
        **{key: value for key, value in flags.items() if key in FEED_FLAGS and value is not None},
    )
    session.add(feed)
    session.commit()
    session.refresh(feed)
    logger.info(f"Created calendar feed {feed.id} ({token_prefix(feed.token)})")
    return feed


def update_feed(session: Session, feed: CalendarFeed, name: str | None = None, **flags: bool) -> CalendarFeed:
    if name is not None:
        feed.name = name
    for key, value in flags.items():
        if key in FEED_FLAGS and value is not None:
            setattr(feed, key, value)
    feed.updated_at = utcnow()
    session.add(feed)
    session.commit()
    session.refresh(feed)
    return feed


def _retire(session: Session, token: str) -> None:
    session.add(RetiredFeedToken(token=token))


def regenerate_token(session: Session, feed: CalendarFeed) -> CalendarFeed:
    """Give the feed a fresh token; the old URL stops working immediately."""
    old_token = feed.token
    _retire(session, old_token)
    feed.token = new_feed_token(session)
    feed.updated_at = utcnow()
    session.add(feed)
    session.commit()
    session.refresh(feed)
    logger.info(f"Regenerated token for feed {feed.id}, revoked {token_prefix(old_token)}")
    return feed


def delete_feed(session: Session, feed: CalendarFeed) -> None:
    _retire(session, feed.token)
    session.delete(feed)
    session.commit()
    logger.info(f"Deleted calendar feed {feed.id}")


def record_feed_access(session: Session, token: str) -> None:
    """Bump a feed's access counter and last-accessed time."""
    feed = get_feed_by_token(session, token)
    if feed is None:
        return
    feed.access_count += 1
    feed.last_accessed_at = utcnow()
    session.add(feed)
    session.commit()


def feed_to_dict(feed: CalendarFeed) -> dict:
    return {
        "id": str(feed.id),
        "name": feed.name,
        "token": feed.token,
        "url": f"{settings.app_url.rstrip('/')}/api/calendar/feed/{feed.token}.ics",
        "member_id": str(feed.member_id) if feed.member_id else None,
        **{key: getattr(feed, key) for key in FEED_FLAGS},
        "last_accessed_at": feed.last_accessed_at.isoformat() if feed.last_accessed_at else None,
        "access_count": feed.access_count,
    }
