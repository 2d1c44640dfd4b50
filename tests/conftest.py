"""Shared test fixtures."""

from datetime import UTC, date, datetime, timedelta
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine

from fam_calendar.calendar.provider import ProviderAccount, ProviderCalendar, TokenGrant, get_provider
from fam_calendar.core.database import get_session
from fam_calendar.core.errors import ProviderUnavailable
from fam_calendar.core.identity import Identity, get_auth_user_id, get_identity, get_optional_auth_user_id
from fam_calendar.main import app
from fam_calendar.models import (
    CalendarConnection,
    CalendarSubscription,
    Contact,
    Family,
    FamilyMember,
)

NOW = datetime(2024, 12, 30, 12, 0, tzinfo=UTC)


class FakeProvider:
    """In-memory stand-in for GoogleCalendarProvider."""

    def __init__(self):
        self.calendars = [
            ProviderCalendar(id="me@example.com", summary="Personal", background_color="#4285F4", primary=True),
            ProviderCalendar(id="work@group.calendar.google.com", summary="Work", background_color=None),
        ]
        self.events: dict[str, list[dict]] = {}
        self.failing_calendars: set[str] = set()
        self.account = ProviderAccount(id="google-user-1", email="me@example.com")
        self.grant = TokenGrant(
            access_token="access-1",
            refresh_token="refresh-1",
            expires_at=NOW + timedelta(hours=1),
            scopes=["openid", "https://www.googleapis.com/auth/calendar.readonly"],
        )
        self.refresh_grant = TokenGrant(
            access_token="access-refreshed",
            refresh_token=None,
            expires_at=NOW + timedelta(hours=1),
        )
        self.refresh_error: Exception | None = None
        self.calls: list[tuple] = []

    def authorization_url(self, state: str) -> str:
        self.calls.append(("authorization_url", state))
        return "https://accounts.google.com/o/oauth2/v2/auth?" + urlencode({"state": state})

    def exchange_code(self, code: str) -> TokenGrant:
        self.calls.append(("exchange_code", code))
        if code == "bad-code":
            raise ProviderUnavailable("Failed to exchange authorization code")
        return self.grant

    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        self.calls.append(("refresh_access_token", refresh_token))
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refresh_grant

    def fetch_user_info(self, access_token: str) -> ProviderAccount:
        self.calls.append(("fetch_user_info", access_token))
        return self.account

    def list_calendars(self, access_token: str) -> list[ProviderCalendar]:
        self.calls.append(("list_calendars", access_token))
        return list(self.calendars)

    def list_events(self, access_token, calendar_id, time_min, time_max, max_results) -> list[dict]:
        self.calls.append(("list_events", access_token, calendar_id, time_min, time_max, max_results))
        if calendar_id in self.failing_calendars:
            raise ProviderUnavailable(f"Fetch events for {calendar_id}: Google returned 500")
        return list(self.events.get(calendar_id, []))[:max_results]

    def called(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture(name="engine")
def engine_fixture(tmp_path):
    """Create a file-backed SQLite database for testing.

    A file (not :memory:) so worker threads get their own connections.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="provider")
def provider_fixture() -> FakeProvider:
    return FakeProvider()


@pytest.fixture(name="family")
def family_fixture(session: Session) -> Family:
    family = Family(name="Smith")
    session.add(family)
    session.commit()
    session.refresh(family)
    return family


@pytest.fixture(name="member")
def member_fixture(session: Session, family: Family) -> FamilyMember:
    """Owner of the family, with a birthday on 2024-12-30."""
    member = FamilyMember(
        family_id=family.id,
        auth_user_id="user-1",
        name="Alex",
        role="owner",
        color="#10B981",
        birthday=date(1990, 12, 30),
    )
    session.add(member)
    session.commit()
    session.refresh(member)
    return member


@pytest.fixture(name="kid")
def kid_fixture(session: Session, family: Family) -> FamilyMember:
    kid = FamilyMember(
        family_id=family.id,
        auth_user_id="user-2",
        name="Sam",
        role="kid",
        color="#F59E0B",
        birthday=date(2016, 3, 5),
    )
    session.add(kid)
    session.commit()
    session.refresh(kid)
    return kid


@pytest.fixture(name="identity")
def identity_fixture(member: FamilyMember) -> Identity:
    return Identity(
        auth_user_id=member.auth_user_id,
        member_id=member.id,
        family_id=member.family_id,
        role=member.role,
    )


@pytest.fixture(name="contact")
def contact_fixture(session: Session, family: Family) -> Contact:
    contact = Contact(family_id=family.id, name="Grandma", contact_type="family", birthday=date(1950, 1, 2))
    session.add(contact)
    session.commit()
    session.refresh(contact)
    return contact


@pytest.fixture(name="connection")
def connection_fixture(session: Session, member: FamilyMember) -> CalendarConnection:
    """A connection whose access token is valid for another hour."""
    connection = CalendarConnection(
        family_id=member.family_id,
        member_id=member.id,
        google_email="me@example.com",
        google_user_id="google-user-1",
        access_token="access-1",
        refresh_token="refresh-1",
        token_expires_at=NOW + timedelta(hours=1),
        granted_scopes="openid https://www.googleapis.com/auth/calendar.readonly",
    )
    session.add(connection)
    session.commit()
    session.refresh(connection)
    return connection


@pytest.fixture(name="subscription")
def subscription_fixture(session: Session, connection: CalendarConnection) -> CalendarSubscription:
    subscription = CalendarSubscription(
        connection_id=connection.id,
        google_calendar_id="me@example.com",
        calendar_name="Personal",
        calendar_color=None,
        is_active=True,
    )
    session.add(subscription)
    session.commit()
    session.refresh(subscription)
    return subscription


@pytest.fixture(name="client")
def client_fixture(session: Session, identity: Identity, provider: FakeProvider):
    """Create a test client with the test database, caller and provider."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_identity] = lambda: identity
    app.dependency_overrides[get_auth_user_id] = lambda: identity.auth_user_id
    app.dependency_overrides[get_optional_auth_user_id] = lambda: identity.auth_user_id
    app.dependency_overrides[get_provider] = lambda: provider
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
