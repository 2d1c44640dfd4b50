"""Family event model for native appointments, meetings and activities.

Family events are created and edited by the entity layer. The calendar
integration treats them as read-only input: they are merged into the
unified timeline and published in ICS feeds.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class FamilyEvent(SQLModel, table=True):
    """A native calendar event.

    Unlike tasks, events have specific times and are not completable.

    Attributes:
        id: Unique identifier (UUID).
        family_id: Owning family.
        title: Event title (e.g. "Dentist").
        description: Optional notes.
        location: Optional address or place name.
        start_time: Start instant, stored in UTC. For all-day events this is
            midnight UTC of the day.
        end_time: End instant in UTC; None when the duration is unknown.
        is_all_day: Whether the event spans whole days rather than a time.
        timezone: IANA timezone the event was entered in, for display.
        assigned_to: Member who attends; None means a family-wide event.
        color: Display color override. When None the assignee's color is used.
        icon: Optional emoji shown next to the title.
        recurrence_rule: iCalendar RRULE value (e.g. "FREQ=WEEKLY;BYDAY=TU").
            Passed through to feeds as-is, never expanded here.
        updated_at: Last modification, used as the feed DTSTAMP.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    title: str
    description: str | None = None
    location: str | None = None
    start_time: datetime = Field(index=True)
    end_time: datetime | None = None
    is_all_day: bool = Field(default=False)
    timezone: str = Field(default="UTC")
    assigned_to: UUID | None = Field(default=None, foreign_key="familymember.id", index=True)
    color: str | None = None
    icon: str | None = None
    recurrence_rule: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
