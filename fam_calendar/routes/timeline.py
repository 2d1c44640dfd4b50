"""Unified calendar item routes."""
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from fam_calendar.calendar.timeline import merge_timeline, today_range
from fam_calendar.core.clock import utcnow
from fam_calendar.core.database import get_session
from fam_calendar.core.identity import Identity, get_identity

router = APIRouter(prefix="/api/calendar/items", tags=["timeline"])

MAX_RANGE_DAYS = 366


@router.get("")
async def calendar_items(
    start: date,
    end: date,
    member_id: UUID | None = None,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Merged family events, Google events and birthdays for a date range.

    ``start`` and ``end`` are inclusive days (YYYY-MM-DD). With
    ``member_id`` family events are limited to that member's and
    unassigned ones.
    """
    if end < start:
        raise HTTPException(status_code=422, detail="end must not be before start")
    if (end - start).days > MAX_RANGE_DAYS:
        raise HTTPException(status_code=422, detail="Date range too large")

    items = await merge_timeline(session.get_bind(), identity, member_id, start, end)
    return [item.to_dict() for item in items]


@router.get("/today")
async def today_items(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Everything on today's (UTC) timeline."""
    start, end = today_range(utcnow())
    items = await merge_timeline(session.get_bind(), identity, None, start, end)
    return [item.to_dict() for item in items]
