"""Unified calendar items.

Family events, cached Google events and birthdays all become
``CalendarItem`` values so the timeline can sort and render them
together. The transforms here are pure; fetching lives in
``fam_calendar.calendar.timeline``.
"""
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any
from uuid import UUID

from fam_calendar.calendar.birthdays import Birthday
from fam_calendar.core.clock import as_utc, start_of_day
from fam_calendar.models import ExternalEvent, FamilyEvent, FamilyMember

DEFAULT_EVENT_COLOR = "#6366F1"  # indigo
DEFAULT_EXTERNAL_COLOR = "#DB4437"  # Google red
BIRTHDAY_COLOR = "#EC4899"  # pink
BIRTHDAY_ICON = "🎂"
DEFAULT_CALENDAR_NAME = "Google Calendar"


class CalendarItemType(str, Enum):
    BIRTHDAY = "birthday"
    EVENT = "event"
    EXTERNAL = "external"
    TASK = "task"
    MEAL = "meal"


# Tie-break order for items starting at the same instant
TYPE_PRIORITY = {
    CalendarItemType.BIRTHDAY: 0,
    CalendarItemType.EVENT: 1,
    CalendarItemType.EXTERNAL: 2,
    CalendarItemType.TASK: 3,
    CalendarItemType.MEAL: 4,
}


@dataclass(frozen=True)
class Assignee:
    id: UUID
    name: str
    color: str | None = None


@dataclass(frozen=True)
class CalendarItem:
    """One entry of the unified timeline.

    Attributes:
        id: Prefixed identifier, unique across sources ("event-<id>",
            "external-<id>", "birthday-<source_id>-<date>").
        start: Start instant in UTC. All-day items start at midnight UTC.
        end: End instant, or None when unknown.
        type: Source kind; only ``event`` items are editable.
        source_id: Id of the row the item was built from.
        meta: Type-specific extras, e.g. ``age_turning`` for birthdays.
    """

    id: str
    title: str
    start: datetime
    end: datetime | None
    is_all_day: bool
    color: str
    type: CalendarItemType
    source_id: str
    icon: str | None = None
    location: str | None = None
    description: str | None = None
    assignee: Assignee | None = None
    calendar_name: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "is_all_day": self.is_all_day,
            "color": self.color,
            "type": self.type.value,
            "source_id": self.source_id,
            "icon": self.icon,
            "location": self.location,
            "description": self.description,
            "assignee": (
                {
                    "id": str(self.assignee.id),
                    "name": self.assignee.name,
                    "color": self.assignee.color,
                }
                if self.assignee
                else None
            ),
            "calendar_name": self.calendar_name,
            "meta": dict(self.meta),
        }


def from_family_event(event: FamilyEvent, assignee: FamilyMember | None = None) -> CalendarItem:
    """Family events are native and editable; color falls back to the assignee's."""
    return CalendarItem(
        id=f"event-{event.id}",
        title=event.title,
        start=as_utc(event.start_time),
        end=as_utc(event.end_time),
        is_all_day=event.is_all_day,
        color=event.color or (assignee.color if assignee else None) or DEFAULT_EVENT_COLOR,
        type=CalendarItemType.EVENT,
        source_id=str(event.id),
        icon=event.icon or None,
        location=event.location or None,
        description=event.description or None,
        assignee=Assignee(assignee.id, assignee.name, assignee.color) if assignee else None,
    )


def from_external_event(event: ExternalEvent, calendar_name: str | None = None) -> CalendarItem:
    """Read-only import from Google, labelled with its calendar."""
    return CalendarItem(
        id=f"external-{event.id}",
        title=event.title,
        start=as_utc(event.start_time),
        end=as_utc(event.end_time),
        is_all_day=event.is_all_day,
        color=event.color or DEFAULT_EXTERNAL_COLOR,
        type=CalendarItemType.EXTERNAL,
        source_id=str(event.id),
        location=event.location or None,
        description=event.description or None,
        calendar_name=calendar_name or DEFAULT_CALENDAR_NAME,
    )


def from_birthday(birthday: Birthday) -> CalendarItem:
    return CalendarItem(
        id=f"birthday-{birthday.source_id}-{birthday.display_date.isoformat()}",
        title=f"{birthday.name}'s Birthday",
        start=start_of_day(birthday.display_date),
        end=None,
        is_all_day=True,
        color=BIRTHDAY_COLOR,
        type=CalendarItemType.BIRTHDAY,
        source_id=str(birthday.source_id),
        icon=BIRTHDAY_ICON,
        meta={"age_turning": birthday.age_turning},
    )


def sort_key(item: CalendarItem) -> tuple:
    """Order by calendar date, all-day first, start instant, then type."""
    return (
        item.start.date(),
        0 if item.is_all_day else 1,
        item.start,
        TYPE_PRIORITY[item.type],
    )


def sort_calendar_items(items: list[CalendarItem]) -> list[CalendarItem]:
    """Return a new sorted list; equal items keep their input order."""
    return sorted(items, key=sort_key)


def is_editable(item: CalendarItem) -> bool:
    return item.type == CalendarItemType.EVENT


def source_label(item: CalendarItem) -> str:
    """Where an item came from, for display."""
    if item.type == CalendarItemType.EVENT:
        return "Fam"
    if item.type == CalendarItemType.EXTERNAL:
        return item.calendar_name or DEFAULT_CALENDAR_NAME
    return item.type.value.capitalize()


def _clock(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def format_item_time(item: CalendarItem, tz: tzinfo | None = None) -> str:
    """Render "All day", "2:00 PM" or "2:00 PM - 3:00 PM".

    Times are shown in ``tz`` when given, otherwise in UTC.
    """
    if item.is_all_day:
        return "All day"
    start = item.start.astimezone(tz) if tz else item.start
    if item.end is None:
        return _clock(start)
    end = item.end.astimezone(tz) if tz else item.end
    return f"{_clock(start)} - {_clock(end)}"
