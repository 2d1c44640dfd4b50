"""Tests for ICS generation."""

from datetime import UTC, date, datetime, timedelta
from uuid import uuid4

import pytest
from icalendar import Calendar
from sqlmodel import Session

from fam_calendar.calendar.ics import (
    IcsRecord,
    IncludeFlags,
    event_record,
    generate,
    meal_record,
    next_occurrence,
    render_calendar,
    task_records,
)
from fam_calendar.core.errors import NotFound
from fam_calendar.models import Family, FamilyEvent, FamilyMember, Goal, Meal, Task

NOW = datetime(2024, 12, 30, 12, 0, tzinfo=UTC)
STAMP = datetime(2024, 12, 1, 8, 0, tzinfo=UTC)
ALL = IncludeFlags(tasks=True, meals=True, goals=True, events=True, birthdays=True)


def events_of(content: bytes) -> list:
    return [c for c in Calendar.from_ical(content).walk() if c.name == "VEVENT"]


class TestNextOccurrence:
    @pytest.mark.parametrize(
        ("frequency", "interval", "expected"),
        [
            ("daily", 1, date(2025, 1, 2)),
            ("weekly", 2, date(2025, 1, 15)),
            ("biweekly", 5, date(2025, 1, 15)),
            ("monthly", 1, date(2025, 2, 1)),
            ("quarterly", 1, date(2025, 4, 1)),
            ("yearly", 1, date(2026, 1, 1)),
            ("custom", 3, date(2025, 1, 8)),
        ],
    )
    def test_frequencies(self, frequency, interval, expected):
        assert next_occurrence(date(2025, 1, 1), frequency, interval) == expected

    def test_month_end_clamps(self):
        assert next_occurrence(date(2025, 1, 31), "monthly") == date(2025, 2, 28)


class TestTaskRecords:
    def test_plain_task(self):
        member = FamilyMember(family_id=uuid4(), name="Alex")
        task = Task(
            family_id=member.family_id,
            title="File taxes",
            due_date=date(2025, 1, 10),
            assigned_to_id=member.id,
            priority=3,
            project_id=uuid4(),
            updated_at=STAMP,
        )
        (record,) = task_records(task, {member.id: member}, 4)
        assert record.uid == f"fam-task-{task.id}@fam.app"
        assert record.is_all_day is True
        assert record.start == date(2025, 1, 10)
        assert record.description == "Assigned to: Alex\nPriority: High"
        assert record.categories == ["Task", "Project"]

    def test_recurring_task_expands(self):
        task = Task(
            family_id=uuid4(),
            title="Bins",
            scheduled_date=date(2025, 1, 6),
            is_recurring=True,
            recurrence_frequency="weekly",
            updated_at=STAMP,
        )
        records = task_records(task, {}, 4)
        assert [r.uid for r in records] == [f"fam-task-{task.id}-{i}@fam.app" for i in range(4)]
        assert [r.start for r in records] == [date(2025, 1, 6) + timedelta(weeks=i) for i in range(4)]

    def test_recurring_task_stops_at_end_date(self):
        task = Task(
            family_id=uuid4(),
            title="Bins",
            due_date=date(2025, 1, 6),
            is_recurring=True,
            recurrence_frequency="daily",
            recurrence_end_date=date(2025, 1, 7),
            updated_at=STAMP,
        )
        assert len(task_records(task, {}, 4)) == 2

    def test_done_or_undated_tasks_skipped(self):
        done = Task(family_id=uuid4(), title="Done", status="done", due_date=date(2025, 1, 1))
        undated = Task(family_id=uuid4(), title="Someday")
        assert task_records(done, {}, 4) == []
        assert task_records(undated, {}, 4) == []


class TestMealAndEventRecords:
    def test_meal_time_and_title(self):
        meal = Meal(family_id=uuid4(), meal_date=date(2025, 1, 2), meal_type="dinner", recipe_title="Lasagna")
        record = meal_record(meal, {})
        assert record.title == "Dinner: Lasagna"
        assert record.start == datetime(2025, 1, 2, 18, tzinfo=UTC)
        assert record.end == datetime(2025, 1, 2, 19, tzinfo=UTC)
        assert record.categories == ["Meal", "Dinner"]
        assert record.uid == f"fam-meal-{meal.id}@fam.app"

    def test_all_day_event_uses_exclusive_date_end(self):
        event = FamilyEvent(
            family_id=uuid4(),
            title="Trip",
            start_time=datetime(2025, 1, 3, tzinfo=UTC),
            end_time=datetime(2025, 1, 5, tzinfo=UTC),
            is_all_day=True,
        )
        record = event_record(event)
        assert record.start == date(2025, 1, 3)
        assert record.end == date(2025, 1, 5)

    def test_timed_event_keeps_utc_datetimes(self):
        event = FamilyEvent(
            family_id=uuid4(),
            title="Dentist",
            start_time=datetime(2025, 1, 3, 14, tzinfo=UTC),
            end_time=datetime(2025, 1, 3, 15, tzinfo=UTC),
            recurrence_rule="FREQ=WEEKLY;BYDAY=FR",
        )
        record = event_record(event)
        assert record.start == datetime(2025, 1, 3, 14, tzinfo=UTC)
        assert record.rrule == "FREQ=WEEKLY;BYDAY=FR"


class TestRenderCalendar:
    def test_calendar_header(self):
        content = render_calendar("Smith (Fam)", [])
        assert content.startswith(b"BEGIN:VCALENDAR\r\n")
        assert content.endswith(b"END:VCALENDAR\r\n")
        assert b"PRODID:-//Fam App//Fam Calendar//EN\r\n" in content
        assert b"VERSION:2.0\r\n" in content
        assert b"CALSCALE:GREGORIAN\r\n" in content
        assert b"METHOD:PUBLISH\r\n" in content
        assert b"X-WR-CALNAME:Smith (Fam)\r\n" in content
        assert b"X-WR-TIMEZONE:UTC\r\n" in content

    def test_date_and_datetime_values(self):
        records = [
            IcsRecord(uid="a@fam.app", title="All day", start=date(2025, 1, 3), end=date(2025, 1, 4), is_all_day=True, stamp=STAMP),
            IcsRecord(
                uid="b@fam.app",
                title="Timed",
                start=datetime(2025, 1, 3, 14, tzinfo=UTC),
                end=datetime(2025, 1, 3, 15, tzinfo=UTC),
                stamp=STAMP,
            ),
        ]
        content = render_calendar("Smith (Fam)", records)
        assert b"DTSTART;VALUE=DATE:20250103\r\n" in content
        assert b"DTEND;VALUE=DATE:20250104\r\n" in content
        assert b"DTSTART:20250103T140000Z\r\n" in content
        assert b"DTSTAMP:20241201T080000Z\r\n" in content

    def test_text_escaping(self):
        record = IcsRecord(
            uid="a@fam.app",
            title="Pack; snacks, water",
            start=date(2025, 1, 3),
            stamp=STAMP,
            is_all_day=True,
            description="Line one\nLine two",
        )
        content = render_calendar("Smith (Fam)", [record])
        assert b"SUMMARY:Pack\\; snacks\\, water\r\n" in content
        assert b"DESCRIPTION:Line one\\nLine two\r\n" in content

    def test_long_lines_folded(self):
        record = IcsRecord(uid="a@fam.app", title="x" * 200, start=date(2025, 1, 3), stamp=STAMP, is_all_day=True)
        content = render_calendar("Smith (Fam)", [record])
        assert all(len(line) <= 75 for line in content.split(b"\r\n"))
        assert b"\r\n " in content
        (event,) = events_of(content)
        assert str(event["SUMMARY"]) == "x" * 200

    def test_rrule_passed_through(self):
        record = IcsRecord(
            uid="a@fam.app",
            title="Swim",
            start=datetime(2025, 1, 3, 17, tzinfo=UTC),
            stamp=STAMP,
            rrule="RRULE:FREQ=WEEKLY;BYDAY=FR",
        )
        content = render_calendar("Smith (Fam)", [record])
        assert b"RRULE:FREQ=WEEKLY;BYDAY=FR\r\n" in content


class TestGenerate:
    """Tests for generating a family's document from the database."""

    @pytest.fixture(name="seeded")
    def seeded_fixture(self, session: Session, family: Family, member: FamilyMember, kid: FamilyMember):
        session.add_all(
            [
                Task(family_id=family.id, title="Mine", due_date=date(2025, 1, 2), assigned_to_id=member.id, updated_at=STAMP),
                Task(family_id=family.id, title="Kid's", due_date=date(2025, 1, 2), assigned_to_id=kid.id, updated_at=STAMP),
                Task(family_id=family.id, title="Far future", due_date=date(2025, 6, 1), updated_at=STAMP),
                Meal(family_id=family.id, meal_date=date(2025, 1, 1), meal_type="lunch", title="Soup", updated_at=STAMP),
                Goal(
                    family_id=family.id,
                    title="Run 100km",
                    owner_id=member.id,
                    goal_type="quantitative",
                    target_value=100,
                    current_value=40,
                    unit="km",
                    target_date=date(2025, 1, 31),
                    updated_at=STAMP,
                ),
                FamilyEvent(
                    family_id=family.id,
                    title="Dentist",
                    start_time=datetime(2025, 1, 3, 14, tzinfo=UTC),
                    end_time=datetime(2025, 1, 3, 15, tzinfo=UTC),
                    assigned_to=member.id,
                    updated_at=STAMP,
                ),
            ]
        )
        session.commit()

    def test_idempotent(self, session: Session, family: Family, seeded):
        first = generate(session, family.id, None, ALL, now=NOW)
        second = generate(session, family.id, None, ALL, now=NOW)
        assert first == second

    def test_change_alters_output(self, session: Session, family: Family, seeded):
        before = generate(session, family.id, None, ALL, now=NOW)
        session.add(Meal(family_id=family.id, meal_date=date(2025, 1, 2), meal_type="breakfast", title="Eggs", updated_at=STAMP))
        session.commit()
        assert generate(session, family.id, None, ALL, now=NOW) != before

    def test_family_feed_contents(self, session: Session, family: Family, seeded):
        content = generate(session, family.id, None, ALL, now=NOW)
        summaries = {str(e["SUMMARY"]) for e in events_of(content)}
        assert {"Mine", "Kid's", "Lunch: Soup", "🎯 Goal: Run 100km", "Dentist"} <= summaries
        assert "Far future" not in summaries
        assert "Alex's Birthday (34)" in summaries
        assert b"X-WR-CALNAME:Smith (Fam)" in content

    def test_goal_description(self, session: Session, family: Family, seeded):
        content = generate(session, family.id, None, IncludeFlags(tasks=False, meals=False, goals=True, events=False), now=NOW)
        (goal,) = events_of(content)
        assert str(goal["DESCRIPTION"]) == "Owner: Alex\nProgress: 40/100 km"

    def test_personal_feed_scoped_to_member(self, session: Session, family: Family, kid: FamilyMember, seeded):
        content = generate(session, family.id, kid.id, ALL, now=NOW)
        summaries = {str(e["SUMMARY"]) for e in events_of(content)}
        assert "Kid's" in summaries
        assert "Mine" not in summaries
        assert "Dentist" not in summaries
        assert "🎯 Goal: Run 100km" not in summaries

    def test_flags_respected(self, session: Session, family: Family, seeded):
        content = generate(session, family.id, None, IncludeFlags(tasks=False, meals=True, events=False), now=NOW)
        assert [str(e["SUMMARY"]) for e in events_of(content)] == ["Lunch: Soup"]

    def test_birthday_uid(self, session: Session, family: Family, member: FamilyMember):
        content = generate(session, family.id, None, IncludeFlags(tasks=False, meals=False, events=False, birthdays=True), now=NOW)
        (birthday,) = events_of(content)
        assert str(birthday["UID"]) == f"fam-birthday-{member.id}-20241230@fam.app"

    def test_unknown_family(self, session: Session):
        with pytest.raises(NotFound):
            generate(session, uuid4(), None, ALL, now=NOW)
