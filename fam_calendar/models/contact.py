"""Contact model (read-only here, used for birthdays)."""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Contact(SQLModel, table=True):
    """A person outside the family: friend, relative, neighbor."""
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    name: str
    contact_type: str = Field(default="other")  # "family", "friend" or "other"
    birthday: date | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    deleted_at: datetime | None = None
