"""Task model, as exposed by the entity layer to the ICS feed."""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Task(SQLModel, table=True):
    """A unit of work with an optional due or scheduled date.

    Only open tasks with a date make it into calendar feeds. Recurring tasks
    describe their cadence with ``recurrence_frequency`` ("daily", "weekly",
    "biweekly", "monthly", "quarterly", "yearly" or "custom") and
    ``recurrence_interval``.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    title: str
    description: str | None = None
    status: str = Field(default="inbox")  # inbox, active, waiting_for, someday, done

    due_date: date | None = None
    scheduled_date: date | None = None
    completed_at: datetime | None = None

    is_recurring: bool = Field(default=False)
    recurrence_frequency: str | None = None
    recurrence_interval: int | None = None
    recurrence_end_date: date | None = None

    assigned_to_id: UUID | None = Field(default=None, foreign_key="familymember.id")
    project_id: UUID | None = None
    priority: int = Field(default=0)  # 0 none, 1 low, 2 medium, 3 high

    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    deleted_at: datetime | None = None
