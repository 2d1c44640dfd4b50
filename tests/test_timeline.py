"""Tests for the unified timeline merger."""

import asyncio
from datetime import UTC, date, datetime

from sqlmodel import Session

from fam_calendar.calendar.timeline import merge_timeline, today_range
from fam_calendar.core.identity import Identity
from fam_calendar.models import (
    CalendarConnection,
    CalendarSubscription,
    ExternalEvent,
    FamilyEvent,
    FamilyMember,
)

DAY = date(2024, 12, 30)


def add_external(session: Session, subscription: CalendarSubscription, family_id, title: str, hour: int) -> ExternalEvent:
    event = ExternalEvent(
        family_id=family_id,
        subscription_id=subscription.id,
        google_event_id=f"g-{title}",
        title=title,
        start_time=datetime(2024, 12, 30, hour, tzinfo=UTC),
        color=subscription.calendar_color,
    )
    session.add(event)
    session.commit()
    return event


def merge(session: Session, identity: Identity, member_scope=None, start=DAY, end=DAY):
    return asyncio.run(merge_timeline(session.get_bind(), identity, member_scope, start, end))


class TestMergeTimeline:
    """Tests for merging events, external events and birthdays."""

    def test_day_with_all_three_sources(
        self,
        session: Session,
        identity: Identity,
        member: FamilyMember,
        subscription: CalendarSubscription,
    ):
        session.add(
            FamilyEvent(
                family_id=member.family_id,
                title="Dentist",
                start_time=datetime(2024, 12, 30, 14, tzinfo=UTC),
                end_time=datetime(2024, 12, 30, 15, tzinfo=UTC),
                assigned_to=member.id,
            )
        )
        session.commit()
        add_external(session, subscription, member.family_id, "Standup", 9)

        items = merge(session, identity)

        assert [item.title for item in items] == ["Alex's Birthday", "Standup", "Dentist"]
        birthday, standup, dentist = items
        assert birthday.color == "#EC4899"
        assert standup.color == "#DB4437"
        assert standup.calendar_name == "Personal"
        assert dentist.color == "#10B981"
        assert dentist.assignee.id == member.id

    def test_empty_day(self, session: Session, identity: Identity):
        assert merge(session, identity, start=date(2024, 6, 1), end=date(2024, 6, 1)) == []

    def test_member_scope_keeps_unassigned_events(
        self, session: Session, identity: Identity, member: FamilyMember, kid: FamilyMember
    ):
        for title, assignee in (("Mine", member.id), ("Kid's", kid.id), ("Everyone", None)):
            session.add(
                FamilyEvent(
                    family_id=member.family_id,
                    title=title,
                    start_time=datetime(2024, 12, 30, 10, tzinfo=UTC),
                    assigned_to=assignee,
                )
            )
        session.commit()

        items = merge(session, identity, member_scope=member.id)
        titles = {item.title for item in items if item.type.value == "event"}
        assert titles == {"Mine", "Everyone"}

    def test_inactive_subscription_hidden(
        self, session: Session, identity: Identity, member: FamilyMember, subscription: CalendarSubscription
    ):
        add_external(session, subscription, member.family_id, "Standup", 9)
        subscription.is_active = False
        session.add(subscription)
        session.commit()

        items = merge(session, identity)
        assert all(item.type.value != "external" for item in items)


class TestVisibility:
    """External events are filtered by subscription visibility."""

    def _setup(self, session: Session, connection: CalendarConnection, member: FamilyMember):
        for visibility in ("owner", "adults", "family"):
            subscription = CalendarSubscription(
                connection_id=connection.id,
                google_calendar_id=f"{visibility}@example.com",
                calendar_name=visibility,
                visibility=visibility,
            )
            session.add(subscription)
            session.commit()
            add_external(session, subscription, member.family_id, visibility, 9)

    def _external_titles(self, items) -> set[str]:
        return {item.title for item in items if item.type.value == "external"}

    def test_owner_sees_everything(
        self, session: Session, identity: Identity, connection: CalendarConnection, member: FamilyMember
    ):
        self._setup(session, connection, member)
        assert self._external_titles(merge(session, identity)) == {"owner", "adults", "family"}

    def test_kid_sees_family_only(
        self, session: Session, connection: CalendarConnection, member: FamilyMember, kid: FamilyMember
    ):
        self._setup(session, connection, member)
        kid_identity = Identity(auth_user_id="user-2", member_id=kid.id, family_id=kid.family_id, role="kid")
        assert self._external_titles(merge(session, kid_identity)) == {"family"}

    def test_other_adult_sees_adults_and_family(
        self, session: Session, connection: CalendarConnection, member: FamilyMember
    ):
        self._setup(session, connection, member)
        partner = FamilyMember(family_id=member.family_id, name="Jordan", role="adult")
        session.add(partner)
        session.commit()
        partner_identity = Identity(
            auth_user_id="user-3", member_id=partner.id, family_id=partner.family_id, role="adult"
        )
        assert self._external_titles(merge(session, partner_identity)) == {"adults", "family"}


class TestTodayRange:
    def test_uses_utc_date(self):
        now = datetime(2024, 12, 30, 23, 30, tzinfo=UTC)
        assert today_range(now) == (date(2024, 12, 30), date(2024, 12, 30))
