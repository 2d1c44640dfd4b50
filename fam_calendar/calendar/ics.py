"""ICS feed generation.

Builds one iCalendar document from a family's open tasks, planned meals,
goal target dates, family events and birthdays. Every VEVENT carries a
stable UID and a DTSTAMP taken from the source row, so generating twice
from unchanged data yields identical bytes (and therefore the same ETag).
"""
import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from uuid import UUID

from dateutil.relativedelta import relativedelta
from icalendar import Calendar, Event, vRecur
from sqlalchemy import or_
from sqlmodel import Session, select

from fam_calendar.calendar.birthdays import Birthday, fetch_birthdays
from fam_calendar.core.clock import as_utc, end_of_day, start_of_day, utcnow
from fam_calendar.core.config import settings
from fam_calendar.core.errors import GenerationFailure, NotFound
from fam_calendar.models import CalendarFeed, Family, FamilyEvent, FamilyMember, Goal, Meal, Task

logger = logging.getLogger(__name__)

PRODID = "-//Fam App//Fam Calendar//EN"
UID_DOMAIN = "fam.app"

PRIORITY_LABELS = {1: "Low", 2: "Medium", 3: "High"}

# Meals have no stored time; they are published at fixed UTC hours
MEAL_TIMES = {
    "breakfast": time(8, 0),
    "lunch": time(12, 0),
    "snack": time(15, 0),
    "dinner": time(18, 0),
}
MEAL_DURATION = timedelta(hours=1)


@dataclass(frozen=True)
class IncludeFlags:
    tasks: bool = True
    meals: bool = True
    goals: bool = False
    events: bool = True
    birthdays: bool = False

    @classmethod
    def from_feed(cls, feed: CalendarFeed) -> "IncludeFlags":
        return cls(
            tasks=feed.include_tasks,
            meals=feed.include_meals,
            goals=feed.include_goals,
            events=feed.include_events,
            birthdays=feed.include_birthdays,
        )


@dataclass
class IcsRecord:
    """One VEVENT before rendering.

    All-day records use ``date`` bounds with an exclusive end; timed
    records use UTC datetimes.
    """

    uid: str
    title: str
    start: date | datetime
    stamp: datetime
    end: date | datetime | None = None
    is_all_day: bool = False
    description: str | None = None
    location: str | None = None
    categories: list[str] = field(default_factory=list)
    rrule: str | None = None


def _uid(*parts) -> str:
    return "fam-" + "-".join(str(p) for p in parts) + f"@{UID_DOMAIN}"


def _stamp(value: datetime | None) -> datetime:
    return as_utc(value) if value else datetime(1970, 1, 1, tzinfo=UTC)


def _number(value: float | None) -> str:
    if value is None:
        return "0"
    return str(int(value)) if float(value).is_integer() else str(value)


def next_occurrence(current: date, frequency: str | None, interval: int | None = None) -> date:
    """Advance a recurring task's date by one step.

    Unknown frequencies fall back to weekly. Month arithmetic clamps to the
    end of shorter months (Jan 31 + 1 month is Feb 28/29).
    """
    interval = interval or 1
    if frequency == "daily":
        return current + timedelta(days=interval)
    if frequency == "weekly":
        return current + timedelta(weeks=interval)
    if frequency == "biweekly":
        return current + timedelta(weeks=2)
    if frequency == "monthly":
        return current + relativedelta(months=interval)
    if frequency == "quarterly":
        return current + relativedelta(months=3)
    if frequency == "yearly":
        return current + relativedelta(years=interval)
    return current + timedelta(weeks=1)


def task_records(
    task: Task,
    members: dict[UUID, FamilyMember],
    instance_count: int,
) -> list[IcsRecord]:
    """All-day records for an open, dated task.

    Recurring tasks expand into up to ``instance_count`` concrete
    occurrences, stopping after the recurrence end date.
    """
    if task.status == "done" or task.completed_at:
        return []
    base_date = task.due_date or task.scheduled_date
    if base_date is None:
        return []

    description = []
    if task.description:
        description.append(task.description)
    assignee = members.get(task.assigned_to_id) if task.assigned_to_id else None
    if assignee:
        description.append(f"Assigned to: {assignee.name}")
    if task.priority and task.priority > 0:
        description.append(f"Priority: {PRIORITY_LABELS.get(task.priority, task.priority)}")

    categories = ["Task"]
    if task.project_id:
        categories.append("Project")

    def record(uid: str, day: date) -> IcsRecord:
        return IcsRecord(
            uid=uid,
            title=task.title,
            start=day,
            end=day + timedelta(days=1),
            is_all_day=True,
            stamp=_stamp(task.updated_at),
            description="\n".join(description) or None,
            categories=categories,
        )

    if not (task.is_recurring and task.recurrence_frequency):
        return [record(_uid("task", task.id), base_date)]

    records = []
    current = base_date
    for i in range(instance_count):
        if task.recurrence_end_date and current > task.recurrence_end_date:
            break
        records.append(record(_uid("task", task.id, i), current))
        current = next_occurrence(current, task.recurrence_frequency, task.recurrence_interval)
    return records


def meal_record(meal: Meal, members: dict[UUID, FamilyMember]) -> IcsRecord:
    meal_label = meal.meal_type.capitalize()
    dish = meal.title or meal.recipe_title or "Meal"

    description = []
    if meal.notes:
        description.append(meal.notes)
    cook = members.get(meal.assigned_to_id) if meal.assigned_to_id else None
    if cook:
        description.append(f"Prepared by: {cook.name}")

    start = datetime.combine(meal.meal_date, MEAL_TIMES.get(meal.meal_type, time(12, 0)), tzinfo=UTC)
    return IcsRecord(
        uid=_uid("meal", meal.id),
        title=f"{meal_label}: {dish}",
        start=start,
        end=start + MEAL_DURATION,
        stamp=_stamp(meal.updated_at),
        description="\n".join(description) or None,
        categories=["Meal", meal_label],
    )


def goal_record(goal: Goal, members: dict[UUID, FamilyMember]) -> IcsRecord | None:
    if not goal.target_date or goal.status in ("achieved", "abandoned"):
        return None

    description = []
    if goal.description:
        description.append(goal.description)
    if goal.definition_of_done:
        description.append(f"Definition of done: {goal.definition_of_done}")
    owner = members.get(goal.owner_id) if goal.owner_id else None
    if owner:
        description.append(f"Owner: {owner.name}")
    if goal.goal_type == "quantitative" and goal.target_value:
        progress = f"Progress: {_number(goal.current_value)}/{_number(goal.target_value)}"
        if goal.unit:
            progress += f" {goal.unit}"
        description.append(progress)

    return IcsRecord(
        uid=_uid("goal", goal.id),
        title=f"🎯 Goal: {goal.title}",
        start=goal.target_date,
        end=goal.target_date + timedelta(days=1),
        is_all_day=True,
        stamp=_stamp(goal.updated_at),
        description="\n".join(description) or None,
        categories=["Goal", "Family" if goal.is_family_goal else "Personal"],
    )


def event_record(event: FamilyEvent) -> IcsRecord:
    """Family events keep their own bounds; the RRULE is passed through."""
    start = as_utc(event.start_time)
    end = as_utc(event.end_time)
    if event.is_all_day:
        start_day = start.date()
        if end is None or end.date() <= start_day:
            end_day = start_day + timedelta(days=1)
        elif end.time() == time(0, 0):
            # already exclusive midnight
            end_day = end.date()
        else:
            end_day = end.date() + timedelta(days=1)
        start_value, end_value = start_day, end_day
    else:
        start_value, end_value = start, end

    return IcsRecord(
        uid=_uid("event", event.id),
        title=event.title,
        start=start_value,
        end=end_value,
        is_all_day=event.is_all_day,
        stamp=_stamp(event.updated_at),
        description=event.description or None,
        location=event.location or None,
        categories=["Event"],
        rrule=event.recurrence_rule or None,
    )


def birthday_record(birthday: Birthday) -> IcsRecord:
    day = birthday.display_date
    return IcsRecord(
        uid=_uid("birthday", birthday.source_id, day.strftime("%Y%m%d")),
        title=f"{birthday.name}'s Birthday ({birthday.age_turning})",
        start=day,
        end=day + timedelta(days=1),
        is_all_day=True,
        stamp=start_of_day(day),
        categories=["Birthday"],
    )


def _to_event(record: IcsRecord) -> Event:
    event = Event()
    event.add("uid", record.uid)
    event.add("dtstamp", record.stamp)
    event.add("dtstart", record.start)
    if record.end is not None:
        event.add("dtend", record.end)
    event.add("summary", record.title)
    if record.description:
        event.add("description", record.description)
    if record.location:
        event.add("location", record.location)
    if record.categories:
        event.add("categories", record.categories)
    if record.rrule:
        rule = record.rrule.strip()
        if rule.upper().startswith("RRULE:"):
            rule = rule[len("RRULE:"):]
        try:
            event.add("rrule", vRecur.from_ical(rule))
        except ValueError:
            logger.warning(f"Skipping unparseable recurrence rule on {record.uid}: {rule}")
    return event


def render_calendar(calendar_name: str, records: list[IcsRecord]) -> bytes:
    """Serialize records into a VCALENDAR document (CRLF lines, folded)."""
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", calendar_name)
    cal.add("x-wr-timezone", "UTC")
    for record in records:
        cal.add_component(_to_event(record))
    return cal.to_ical()


def collect_records(
    session: Session,
    family_id: UUID,
    member_id: UUID | None,
    flags: IncludeFlags,
    today: date,
) -> list[IcsRecord]:
    """Fetch everything the flags select and build the records.

    With ``member_id`` set the feed is personal: only that member's tasks,
    their own and family goals, and events assigned to them or to nobody.
    """
    window_end = today + timedelta(days=settings.feed_days_ahead)
    members = {
        m.id: m
        for m in session.exec(select(FamilyMember).where(FamilyMember.family_id == family_id)).all()
    }
    records: list[IcsRecord] = []

    if flags.tasks:
        statement = (
            select(Task)
            .where(Task.family_id == family_id)
            .where(Task.deleted_at == None)  # noqa: E711
            .where(Task.status != "done")
            .where(or_(Task.due_date <= window_end, Task.scheduled_date <= window_end))
            .order_by(Task.due_date, Task.scheduled_date, Task.id)
        )
        if member_id:
            statement = statement.where(Task.assigned_to_id == member_id)
        for task in session.exec(statement).all():
            records.extend(task_records(task, members, settings.feed_recurring_instances))

    if flags.meals:
        statement = (
            select(Meal)
            .where(Meal.family_id == family_id)
            .where(Meal.meal_date >= today)
            .where(Meal.meal_date <= window_end)
            .order_by(Meal.meal_date, Meal.meal_type, Meal.id)
        )
        records.extend(meal_record(meal, members) for meal in session.exec(statement).all())

    if flags.goals:
        statement = (
            select(Goal)
            .where(Goal.family_id == family_id)
            .where(Goal.deleted_at == None)  # noqa: E711
            .where(Goal.status == "active")
            .where(Goal.target_date != None)  # noqa: E711
            .order_by(Goal.target_date, Goal.id)
        )
        if member_id:
            statement = statement.where(or_(Goal.owner_id == member_id, Goal.is_family_goal == True))  # noqa: E712
        for goal in session.exec(statement).all():
            record = goal_record(goal, members)
            if record:
                records.append(record)

    if flags.events:
        statement = (
            select(FamilyEvent)
            .where(FamilyEvent.family_id == family_id)
            .where(FamilyEvent.start_time >= start_of_day(today))
            .where(FamilyEvent.start_time <= end_of_day(window_end))
            .order_by(FamilyEvent.start_time, FamilyEvent.id)
        )
        if member_id:
            statement = statement.where(
                or_(FamilyEvent.assigned_to == member_id, FamilyEvent.assigned_to == None)  # noqa: E711
            )
        records.extend(event_record(event) for event in session.exec(statement).all())

    if flags.birthdays:
        records.extend(birthday_record(b) for b in fetch_birthdays(session, family_id, today, window_end))

    return records


def generate(
    session: Session,
    family_id: UUID,
    member_id: UUID | None,
    flags: IncludeFlags,
    now: datetime | None = None,
) -> bytes:
    """
    Generate the ICS document for a family (or one member of it).

    Raises NotFound when the family does not exist and GenerationFailure
    for any other error while building the document.
    """
    family = session.get(Family, family_id)
    if family is None:
        raise NotFound("Family not found")

    today = (as_utc(now) if now else utcnow()).date()
    try:
        records = collect_records(session, family_id, member_id, flags, today)
        content = render_calendar(f"{family.name} (Fam)", records)
    except Exception as e:
        logger.error(f"ICS generation failed for family {family_id}: {e}")
        raise GenerationFailure("Failed to generate calendar") from e

    logger.info(f"ICS feed generated: {len(records)} events, {len(content)} bytes")
    return content
