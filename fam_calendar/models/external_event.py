"""Cached external event model.

Rows mirror remote event instances for one subscription. They are never
edited in place: each sync run deletes the subscription's rows inside the
sync window and inserts the freshly fetched set.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class ExternalEvent(SQLModel, table=True):
    """One remote event instance for one subscription.

    Attributes:
        id: Local identifier (UUID), regenerated on every sync.
        family_id: Family of the connection owning the subscription.
        subscription_id: Source CalendarSubscription.
        google_event_id: Google's event id (instance id for recurring events).
        start_time: Start in UTC; midnight UTC for all-day events.
        end_time: End in UTC, if the provider sent one.
        is_all_day: True when the provider sent a date rather than a date-time.
        original_timezone: Provider timezone for timed events, None for all-day.
        color: Calendar color at sync time.
        google_updated_at: Remote last-modified timestamp.
        fetched_at: When this row was written.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    subscription_id: UUID = Field(foreign_key="calendarsubscription.id", index=True)
    google_event_id: str
    title: str
    description: str | None = None
    location: str | None = None
    start_time: datetime = Field(index=True)
    end_time: datetime | None = None
    is_all_day: bool = Field(default=False)
    original_timezone: str | None = None
    color: str | None = None
    google_updated_at: datetime | None = None
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
