"""Unified timeline of family events, Google events and birthdays.

The three sources are read concurrently, each in a worker thread with its
own session, then transformed into CalendarItems and sorted. Nothing here
writes to the database.
"""
import asyncio
import logging
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from fam_calendar.calendar.birthdays import fetch_birthdays
from fam_calendar.calendar.items import (
    CalendarItem,
    from_birthday,
    from_external_event,
    from_family_event,
    sort_calendar_items,
)
from fam_calendar.core.clock import as_utc, end_of_day, start_of_day
from fam_calendar.core.identity import Identity
from fam_calendar.models import (
    CalendarConnection,
    CalendarSubscription,
    ExternalEvent,
    FamilyEvent,
    FamilyMember,
)

logger = logging.getLogger(__name__)


def fetch_family_events(
    bind: Engine,
    family_id: UUID,
    member_scope: UUID | None,
    start: datetime,
    end: datetime,
) -> list[CalendarItem]:
    """Family events starting in range, with their assignee.

    With ``member_scope`` only that member's events and unassigned ones.
    """
    with Session(bind) as session:
        statement = (
            select(FamilyEvent, FamilyMember)
            .join(FamilyMember, FamilyEvent.assigned_to == FamilyMember.id, isouter=True)
            .where(FamilyEvent.family_id == family_id)
            .where(FamilyEvent.start_time >= start)
            .where(FamilyEvent.start_time <= end)
            .order_by(FamilyEvent.start_time)
        )
        if member_scope is not None:
            statement = statement.where(
                or_(FamilyEvent.assigned_to == member_scope, FamilyEvent.assigned_to == None)  # noqa: E711
            )
        return [from_family_event(event, assignee) for event, assignee in session.exec(statement).all()]


def fetch_external_events(
    bind: Engine,
    identity: Identity,
    start: datetime,
    end: datetime,
) -> list[CalendarItem]:
    """Cached Google events in range that the caller may see.

    Visibility "owner" is limited to the member who connected the calendar,
    "adults" to owners and adults, "family" to everyone in the family.
    """
    visible = [
        CalendarSubscription.visibility == "family",
        CalendarConnection.member_id == identity.member_id,
    ]
    if identity.is_adult:
        visible.append(CalendarSubscription.visibility == "adults")

    with Session(bind) as session:
        statement = (
            select(ExternalEvent, CalendarSubscription.calendar_name)
            .join(CalendarSubscription, ExternalEvent.subscription_id == CalendarSubscription.id)
            .join(CalendarConnection, CalendarSubscription.connection_id == CalendarConnection.id)
            .where(ExternalEvent.family_id == identity.family_id)
            .where(CalendarConnection.family_id == identity.family_id)
            .where(CalendarSubscription.is_active == True)  # noqa: E712
            .where(or_(*visible))
            .where(ExternalEvent.start_time >= start)
            .where(ExternalEvent.start_time <= end)
            .order_by(ExternalEvent.start_time)
        )
        return [from_external_event(event, name) for event, name in session.exec(statement).all()]


def fetch_birthday_items(bind: Engine, family_id: UUID, start: date, end: date) -> list[CalendarItem]:
    with Session(bind) as session:
        return [from_birthday(b) for b in fetch_birthdays(session, family_id, start, end)]


async def merge_timeline(
    bind: Engine,
    identity: Identity,
    member_scope: UUID | None,
    start: date,
    end: date,
) -> list[CalendarItem]:
    """
    Merge all calendar sources for ``start``..``end`` (inclusive days).

    The three reads run concurrently; if the awaiting task is cancelled the
    gather is cancelled with it. Returns items in timeline order.
    """
    range_start = start_of_day(start)
    range_end = end_of_day(end)

    family_events, external_events, birthdays = await asyncio.gather(
        asyncio.to_thread(
            fetch_family_events, bind, identity.family_id, member_scope, range_start, range_end
        ),
        asyncio.to_thread(fetch_external_events, bind, identity, range_start, range_end),
        asyncio.to_thread(fetch_birthday_items, bind, identity.family_id, start, end),
    )
    logger.debug(
        f"Timeline {start}..{end}: {len(family_events)} events, "
        f"{len(external_events)} external, {len(birthdays)} birthdays"
    )
    return sort_calendar_items(family_events + external_events + birthdays)


def today_range(now: datetime) -> tuple[date, date]:
    """UTC day bounds for the "today" view."""
    today = as_utc(now).date()
    return today, today
