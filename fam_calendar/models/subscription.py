"""Calendar subscription model.

A subscription records that one of the member's Google calendars is
mirrored locally, and who in the family may see its events.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

VISIBILITIES = ("owner", "adults", "family")


class CalendarSubscription(SQLModel, table=True):
    """One Google calendar owned by a connection.

    Subscriptions are recreated from the provider's calendar list on every
    successful (re)connection; only the primary calendar starts active.

    Attributes:
        id: Unique identifier (UUID).
        connection_id: Owning CalendarConnection.
        google_calendar_id: Google's calendar id ("primary" address or
            "...@group.calendar.google.com").
        calendar_name: Display name from Google.
        calendar_color: Hex background color from Google, if any.
        visibility: Who can see events from this calendar: "owner" (only the
            connecting member), "adults" (owners and adults) or "family".
        is_active: Whether the sync engine mirrors this calendar.
    """
    __table_args__ = (UniqueConstraint("connection_id", "google_calendar_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    connection_id: UUID = Field(foreign_key="calendarconnection.id", index=True)
    google_calendar_id: str
    calendar_name: str
    calendar_color: str | None = None
    visibility: str = Field(default="owner")
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
