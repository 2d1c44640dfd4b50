"""Family and family member models.

Families and their members are owned by the entity layer; the calendar
integration only reads them (names, colors, roles and birthdays) and
resolves the caller's identity through ``FamilyMember.auth_user_id``.
"""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Family(SQLModel, table=True):
    """Top-level container for all family data."""
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    timezone: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class FamilyMember(SQLModel, table=True):
    """A person in the family.

    Attributes:
        id: Unique identifier (UUID).
        family_id: Family this member belongs to.
        auth_user_id: Identity of the signed-in user, if the member has an
            account. Kids typically have none.
        name: Display name.
        role: One of "owner", "adult" or "kid". Controls which imported
            calendars the member may see.
        color: Hex display color (e.g. "#10B981"), used as the fallback
            color for events assigned to the member.
        birthday: Birth date, used to compute birthday timeline entries.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    auth_user_id: str | None = Field(default=None, index=True, unique=True)
    name: str
    email: str | None = None
    role: str = Field(default="adult")  # "owner", "adult" or "kid"
    color: str | None = None
    birthday: date | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_adult(self) -> bool:
        return self.role in ("owner", "adult")
