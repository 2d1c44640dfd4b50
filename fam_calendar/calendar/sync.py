"""Calendar synchronization service.

Pulls each member's active Google calendars into the external event cache.
A run refreshes the access token when it is about to expire, then for every
active subscription fetches the sync window and replaces the cached rows in
that window with the fetched set in one transaction.
"""
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, or_
from sqlmodel import Session, col, select

from fam_calendar.calendar.oauth import get_connection, store_token_grant
from fam_calendar.calendar.provider import GoogleCalendarProvider, parse_event_time, parse_rfc3339
from fam_calendar.core.clock import as_utc, utcnow
from fam_calendar.core.config import settings
from fam_calendar.core.errors import AuthExpired, CalendarError, ProviderUnavailable
from fam_calendar.models import CalendarConnection, CalendarSubscription, ExternalEvent

logger = logging.getLogger(__name__)

TOKEN_EXPIRED_MESSAGE = "Token expired. Please reconnect Google Calendar."
REFRESH_FAILED_MESSAGE = "Failed to refresh token. Please reconnect Google Calendar."


class KeyedLocks:
    """One ``threading.Lock`` per key, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Any, threading.Lock] = {}

    def for_key(self, key) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


# Concurrent refreshes for one member can make Google invalidate one of the
# two new tokens, so refresh is serialized per member.
refresh_locks = KeyedLocks()
# Overlapping runs (manual + scheduled) replace a subscription's window one at a time
window_locks = KeyedLocks()


@dataclass
class SyncResult:
    connected: bool
    synced_count: int = 0
    subscriptions_processed: int = 0
    subscriptions_failed: int = 0


def _needs_refresh(connection: CalendarConnection, now: datetime) -> bool:
    expires_at = as_utc(connection.token_expires_at)
    if expires_at is None:
        return True
    return expires_at - now < timedelta(minutes=settings.token_refresh_margin_minutes)


def _record_error(session: Session, connection: CalendarConnection, message: str) -> None:
    connection.sync_error = message
    connection.updated_at = utcnow()
    session.add(connection)
    session.commit()


def ensure_fresh_token(
    session: Session,
    provider: GoogleCalendarProvider,
    connection: CalendarConnection,
    now: datetime,
) -> str:
    """Return a usable access token, refreshing it first if it expires soon.

    The refresh happens under the member's lock. After acquiring it the
    connection is re-read, so a run that waited on another run's refresh
    uses the new token instead of refreshing again.
    """
    if not _needs_refresh(connection, now):
        return connection.access_token

    with refresh_locks.for_key(connection.member_id):
        session.refresh(connection)
        if not _needs_refresh(connection, now):
            logger.debug(f"Token for member {connection.member_id} already refreshed")
            return connection.access_token

        if not connection.refresh_token:
            logger.error("Token expired and no refresh token available")
            _record_error(session, connection, TOKEN_EXPIRED_MESSAGE)
            raise AuthExpired(TOKEN_EXPIRED_MESSAGE)

        logger.info(f"Refreshing access token for member {connection.member_id}")
        try:
            grant = provider.refresh_access_token(connection.refresh_token)
        except AuthExpired:
            logger.error("Refresh token rejected by Google")
            _record_error(session, connection, TOKEN_EXPIRED_MESSAGE)
            raise
        except ProviderUnavailable as e:
            logger.error(f"Failed to refresh token: {e}")
            _record_error(session, connection, REFRESH_FAILED_MESSAGE)
            raise

        store_token_grant(connection, grant)
        session.add(connection)
        session.commit()
        session.refresh(connection)
        logger.info("Access token refreshed")
        return connection.access_token


def build_event_rows(
    google_events: list[dict],
    subscription: CalendarSubscription,
    family_id: UUID,
    fetched_at: datetime,
) -> list[ExternalEvent]:
    """Turn provider event payloads into cache rows.

    Events without a start or a title are skipped. A start or end value
    that cannot be parsed raises ValueError for the whole calendar.
    """
    rows = []
    for google_event in google_events:
        if not google_event.get("start") or not google_event.get("summary"):
            continue
        start = parse_event_time(google_event["start"])
        end = parse_event_time(google_event["end"]) if google_event.get("end") else None
        rows.append(
            ExternalEvent(
                family_id=family_id,
                subscription_id=subscription.id,
                google_event_id=google_event["id"],
                title=google_event["summary"],
                description=google_event.get("description") or None,
                location=google_event.get("location") or None,
                start_time=start.timestamp,
                end_time=end.timestamp if end else None,
                is_all_day=start.is_all_day,
                original_timezone=start.timezone,
                color=subscription.calendar_color,
                google_updated_at=parse_rfc3339(google_event.get("updated")),
                fetched_at=fetched_at,
            )
        )
    return rows


def replace_window(
    session: Session,
    subscription_id: UUID,
    rows: list[ExternalEvent],
    time_min: datetime,
    time_max: datetime,
) -> int:
    """Atomically swap the subscription's cached rows inside the window.

    A cached row belongs to the window when it overlaps it: it starts
    inside, or started earlier and ends after ``time_min`` (all-day and
    multi-day events the provider returns for the window's first day), or
    it carries the id of a freshly fetched event.

    Delete and insert share one transaction; on any failure it is rolled
    back and the previous rows stay in place.
    """
    in_window = [
        ExternalEvent.start_time >= time_min,
        ExternalEvent.end_time > time_min,
    ]
    fetched_ids = {row.google_event_id for row in rows}
    if fetched_ids:
        in_window.append(col(ExternalEvent.google_event_id).in_(fetched_ids))

    with window_locks.for_key(subscription_id):
        try:
            session.exec(
                delete(ExternalEvent)
                .where(ExternalEvent.subscription_id == subscription_id)
                .where(ExternalEvent.start_time <= time_max)
                .where(or_(*in_window))
                .execution_options(synchronize_session="fetch")
            )
            session.add_all(rows)
            session.commit()
        except Exception:
            session.rollback()
            raise
    return len(rows)


def sync_member(
    session: Session,
    provider: GoogleCalendarProvider,
    member_id: UUID,
    now: datetime | None = None,
) -> SyncResult:
    """
    Sync every active Google calendar of one member.

    Returns a SyncResult; ``connected`` is False when the member has no
    connection. Raises AuthExpired when the token cannot be refreshed and
    ProviderUnavailable when the token endpoint fails. Failures of single
    calendars are logged and counted without aborting the run.
    """
    now = as_utc(now) if now else utcnow()

    connection = get_connection(session, member_id)
    if connection is None:
        logger.info(f"No Google Calendar connection for member {member_id}")
        return SyncResult(connected=False)

    access_token = ensure_fresh_token(session, provider, connection, now)
    connection_id = connection.id
    family_id = connection.family_id

    subscriptions = session.exec(
        select(CalendarSubscription)
        .where(CalendarSubscription.connection_id == connection_id)
        .where(CalendarSubscription.is_active == True)  # noqa: E712
    ).all()
    if not subscriptions:
        logger.info("No active calendar subscriptions")
        return SyncResult(connected=True)

    time_min = now - timedelta(days=settings.sync_days_back)
    time_max = now + timedelta(days=settings.sync_days_ahead)

    result = SyncResult(connected=True, subscriptions_processed=len(subscriptions))
    # Detach plain values; a rollback below expires the ORM objects
    targets = [(s.id, s.google_calendar_id, s.calendar_name, s) for s in subscriptions]
    for subscription_id, calendar_id, calendar_name, subscription in targets:
        try:
            logger.info(f"Syncing calendar {calendar_name}")
            google_events = provider.list_events(
                access_token,
                calendar_id,
                time_min,
                time_max,
                settings.sync_max_results,
            )
            rows = build_event_rows(google_events, subscription, family_id, utcnow())
            count = replace_window(session, subscription_id, rows, time_min, time_max)
        except Exception as e:
            result.subscriptions_failed += 1
            logger.error(f"Failed to sync calendar {calendar_name}: {e}")
            continue
        result.synced_count += count
        logger.info(f"Synced {count} events from {calendar_name}")

    connection = session.get(CalendarConnection, connection_id)
    connection.last_synced_at = utcnow()
    connection.sync_error = None
    connection.updated_at = utcnow()
    session.add(connection)
    session.commit()

    logger.info(f"Calendar sync completed for member {member_id}: {result}")
    return result


def sync_all(session_factory: Callable[[], Session], provider: GoogleCalendarProvider) -> dict:
    """Sync every stored connection, one session per member.

    Used by the scheduler. A failing member is logged and skipped.
    """
    with session_factory() as session:
        member_ids = session.exec(select(CalendarConnection.member_id)).all()

    stats = {"members": len(member_ids), "synced": 0, "failed": 0}
    for member_id in member_ids:
        try:
            with session_factory() as session:
                result = sync_member(session, provider, member_id)
        except CalendarError as e:
            stats["failed"] += 1
            logger.warning(f"Sync for member {member_id} failed ({e.code}): {e}")
            continue
        except Exception as e:
            stats["failed"] += 1
            logger.error(f"Sync for member {member_id} failed: {e}")
            continue
        stats["synced"] += result.synced_count
    return stats


def cleanup_old_external_events(
    session: Session,
    days_to_keep: int | None = None,
    now: datetime | None = None,
) -> int:
    """Delete cached events that started more than ``days_to_keep`` days ago."""
    if days_to_keep is None:
        days_to_keep = settings.external_event_retention_days
    now = as_utc(now) if now else utcnow()
    cutoff = now - timedelta(days=days_to_keep)

    result = session.exec(delete(ExternalEvent).where(ExternalEvent.start_time < cutoff))
    session.commit()
    deleted = result.rowcount or 0
    logger.info(f"Removed {deleted} cached external events older than {days_to_keep} days")
    return deleted
