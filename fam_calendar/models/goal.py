"""Goal model."""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Goal(SQLModel, table=True):
    """A personal or family goal; its target date shows up in feeds."""
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    title: str
    description: str | None = None
    definition_of_done: str | None = None
    owner_id: UUID | None = Field(default=None, foreign_key="familymember.id")
    is_family_goal: bool = Field(default=False)
    goal_type: str = Field(default="qualitative")  # qualitative or quantitative
    target_value: float | None = None
    current_value: float = Field(default=0)
    unit: str | None = None
    status: str = Field(default="active")  # active, achieved, abandoned
    target_date: date | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    deleted_at: datetime | None = None
