"""ICS calendar feed model.

A feed is a secret URL that calendar apps (Google Calendar, Apple Calendar,
Outlook) subscribe to. The token in the URL is the only credential, so
deleting a feed or regenerating its token revokes access.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class CalendarFeed(SQLModel, table=True):
    """A subscribable ICS feed configuration.

    Attributes:
        id: Unique identifier (UUID).
        family_id: Family whose data the feed publishes.
        member_id: When set, a personal feed limited to this member's items;
            None for a family-wide feed.
        token: Unguessable hex token used in the feed URL. Unique and never
            reused once a feed is deleted.
        name: Label shown in settings and used for the download filename.
        include_tasks: Open tasks with due or scheduled dates.
        include_meals: Planned meals.
        include_goals: Goal target dates as all-day reminders.
        include_events: Native family events.
        include_birthdays: Member and contact birthdays.
        last_accessed_at: When a calendar app last fetched the feed.
        access_count: How many times the feed has been fetched.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    member_id: UUID | None = Field(default=None, foreign_key="familymember.id")
    token: str = Field(index=True, unique=True)
    name: str = Field(default="Fam Calendar")
    include_tasks: bool = Field(default=True)
    include_meals: bool = Field(default=True)
    include_goals: bool = Field(default=False)
    include_events: bool = Field(default=True)
    include_birthdays: bool = Field(default=False)
    last_accessed_at: datetime | None = None
    access_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RetiredFeedToken(SQLModel, table=True):
    """Tokens of deleted or regenerated feeds, kept so they are never reissued."""
    token: str = Field(primary_key=True)
    retired_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
