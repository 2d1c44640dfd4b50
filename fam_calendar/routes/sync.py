"""Sync routes for triggering and monitoring calendar sync."""
import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from fam_calendar.calendar.oauth import get_connection
from fam_calendar.calendar.provider import GoogleCalendarProvider, get_provider
from fam_calendar.calendar.sync import TOKEN_EXPIRED_MESSAGE, sync_member
from fam_calendar.core.config import settings
from fam_calendar.core.database import get_session
from fam_calendar.core.errors import AuthExpired, ProviderUnavailable
from fam_calendar.core.identity import Identity, get_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar/sync", tags=["sync"])


@router.post("")
def trigger_sync(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
    provider: GoogleCalendarProvider = Depends(get_provider),
):
    """
    Manually trigger a sync of the caller's Google calendars.

    Returns ``{synced, subscriptions, durationMs}``. Responds 400 when no
    calendar is connected and 401 when the token is expired or could not
    be refreshed; either way the user must reconnect.
    """
    started = time.monotonic()
    logger.info(f"Calendar sync requested by member {identity.member_id}")

    try:
        result = sync_member(session, provider, identity.member_id)
    except AuthExpired:
        return JSONResponse({"error": TOKEN_EXPIRED_MESSAGE}, status_code=401)
    except ProviderUnavailable:
        return JSONResponse({"error": "Failed to refresh token"}, status_code=401)

    if not result.connected:
        return JSONResponse({"error": "No Google Calendar connected", "synced": 0}, status_code=400)

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"Calendar sync completed: {result.synced_count} events in {duration_ms}ms")
    return {
        "synced": result.synced_count,
        "subscriptions": result.subscriptions_processed,
        "durationMs": duration_ms,
    }


@router.get("/status")
async def sync_status(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Get current sync status for the caller.

    Returns whether a calendar is connected, when it last synced, the last
    error (if any) and the sync interval configuration.
    """
    connection = get_connection(session, identity.member_id)
    return {
        "connected": connection is not None,
        "sync_interval_minutes": settings.sync_interval_minutes,
        "last_synced_at": (
            connection.last_synced_at.isoformat() if connection and connection.last_synced_at else None
        ),
        "sync_error": connection.sync_error if connection else None,
    }
