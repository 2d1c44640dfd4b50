"""Planned meal model."""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Meal(SQLModel, table=True):
    """A meal planned for a given day.

    ``recipe_title`` is the joined recipe name; ``title`` overrides it when
    the meal is not based on a recipe.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    meal_date: date = Field(index=True)
    meal_type: str = Field(default="dinner")  # breakfast, lunch, dinner, snack
    title: str | None = None
    recipe_title: str | None = None
    notes: str | None = None
    assigned_to_id: UUID | None = Field(default=None, foreign_key="familymember.id")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
