"""Google Calendar connection lifecycle.

Covers the OAuth round trip (authorization URL with a CSRF state nonce,
code exchange on callback), storing tokens on the member's connection,
seeding subscriptions from the provider's calendar list, and explicit
disconnect.
"""
import logging
import secrets
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete
from sqlmodel import Session, col, select

from fam_calendar.calendar.provider import GoogleCalendarProvider, ProviderCalendar, TokenGrant
from fam_calendar.core.clock import as_utc, utcnow
from fam_calendar.core.errors import InvalidState, NotFound
from fam_calendar.core.identity import Identity
from fam_calendar.models import VISIBILITIES, CalendarConnection, CalendarSubscription, ExternalEvent

logger = logging.getLogger(__name__)


@dataclass
class AuthorizationRequest:
    redirect_url: str
    state: str


def begin_authorization(provider: GoogleCalendarProvider, identity: Identity) -> AuthorizationRequest:
    """Create a state nonce and the Google consent URL carrying it.

    The caller stores ``state`` in a short-lived cookie; the callback must
    present the same value.
    """
    state = secrets.token_urlsafe(32)
    logger.info(f"Starting Google OAuth for member {identity.member_id}")
    return AuthorizationRequest(redirect_url=provider.authorization_url(state), state=state)


def verify_state(received: str | None, expected: str | None) -> None:
    """Compare the callback state with the stored nonce, byte for byte."""
    if not received or not expected:
        raise InvalidState("Missing OAuth state")
    if not secrets.compare_digest(received.encode(), expected.encode()):
        raise InvalidState("OAuth state mismatch")


def store_token_grant(connection: CalendarConnection, grant: TokenGrant) -> None:
    """Apply new tokens to a connection.

    Google usually omits the refresh token on refresh responses, so an
    existing refresh token is only replaced by a new one, never by None.
    """
    connection.access_token = grant.access_token
    if grant.refresh_token:
        connection.refresh_token = grant.refresh_token
    connection.token_expires_at = grant.expires_at
    if grant.scopes:
        connection.granted_scopes = " ".join(grant.scopes)
    connection.updated_at = utcnow()


def get_connection(session: Session, member_id: UUID) -> CalendarConnection | None:
    return session.exec(
        select(CalendarConnection).where(CalendarConnection.member_id == member_id)
    ).first()


def complete_authorization(
    session: Session,
    provider: GoogleCalendarProvider,
    identity: Identity,
    code: str,
    state: str | None,
    expected_state: str | None,
) -> CalendarConnection:
    """Finish the OAuth flow for the calling member.

    Verifies the state nonce before doing anything else, exchanges the code,
    upserts the member's connection and recreates its subscriptions from the
    current calendar list.
    """
    verify_state(state, expected_state)

    logger.info("Exchanging authorization code for tokens")
    grant = provider.exchange_code(code)
    account = provider.fetch_user_info(grant.access_token)

    connection = get_connection(session, identity.member_id)
    if connection:
        logger.info(f"Updating existing Google Calendar connection for member {identity.member_id}")
        connection.google_email = account.email
        connection.google_user_id = account.id
        connection.sync_error = None
    else:
        logger.info(f"Creating Google Calendar connection for member {identity.member_id}")
        connection = CalendarConnection(
            family_id=identity.family_id,
            member_id=identity.member_id,
            google_email=account.email,
            google_user_id=account.id,
            access_token=grant.access_token,
        )
    store_token_grant(connection, grant)
    session.add(connection)
    session.commit()
    session.refresh(connection)

    calendars = provider.list_calendars(grant.access_token)
    replace_subscriptions(session, connection, calendars)
    session.commit()

    logger.info(
        f"Google Calendar connected for {account.email}: {len(calendars)} calendars"
    )
    return connection


def _delete_subscriptions(session: Session, subscription_ids) -> None:
    session.exec(
        delete(ExternalEvent)
        .where(col(ExternalEvent.subscription_id).in_(subscription_ids))
        .execution_options(synchronize_session="fetch")
    )
    session.exec(
        delete(CalendarSubscription)
        .where(col(CalendarSubscription.id).in_(subscription_ids))
        .execution_options(synchronize_session="fetch")
    )


def replace_subscriptions(
    session: Session,
    connection: CalendarConnection,
    calendars: list[ProviderCalendar],
) -> list[CalendarSubscription]:
    """Delete the connection's subscriptions and reseed them.

    Only the provider's primary calendar starts active; everything defaults
    to owner-only visibility. Cached events of the old subscriptions go with
    them.
    """
    old_ids = session.exec(
        select(CalendarSubscription.id).where(CalendarSubscription.connection_id == connection.id)
    ).all()
    if old_ids:
        _delete_subscriptions(session, old_ids)

    subscriptions = []
    seen = set()
    for calendar in calendars:
        if calendar.id in seen:
            continue
        seen.add(calendar.id)
        subscription = CalendarSubscription(
            connection_id=connection.id,
            google_calendar_id=calendar.id,
            calendar_name=calendar.summary,
            calendar_color=calendar.background_color,
            is_active=calendar.primary,
            visibility="owner",
        )
        session.add(subscription)
        subscriptions.append(subscription)
    return subscriptions


def disconnect(session: Session, member_id: UUID) -> bool:
    """Remove a member's connection, its subscriptions and cached events."""
    connection = get_connection(session, member_id)
    if connection is None:
        return False

    subscription_ids = session.exec(
        select(CalendarSubscription.id).where(CalendarSubscription.connection_id == connection.id)
    ).all()
    if subscription_ids:
        _delete_subscriptions(session, subscription_ids)
    session.delete(connection)
    session.commit()
    logger.info(f"Disconnected Google Calendar for member {member_id}")
    return True


def connection_info(connection: CalendarConnection) -> dict:
    """Connection status for display, without any token material."""
    last_synced = as_utc(connection.last_synced_at)
    return {
        "connected": True,
        "id": str(connection.id),
        "google_email": connection.google_email,
        "last_synced_at": last_synced.isoformat() if last_synced else None,
        "sync_error": connection.sync_error,
        "created_at": as_utc(connection.created_at).isoformat(),
    }


def list_subscriptions(session: Session, member_id: UUID) -> list[CalendarSubscription]:
    connection = get_connection(session, member_id)
    if connection is None:
        return []
    return list(
        session.exec(
            select(CalendarSubscription)
            .where(CalendarSubscription.connection_id == connection.id)
            .order_by(CalendarSubscription.calendar_name)
        ).all()
    )


def update_subscription(
    session: Session,
    identity: Identity,
    subscription_id: UUID,
    is_active: bool | None = None,
    visibility: str | None = None,
) -> CalendarSubscription:
    """Toggle a subscription or change its visibility.

    Only the member who owns the connection may change its subscriptions;
    anything else is reported as not found.
    """
    subscription = session.get(CalendarSubscription, subscription_id)
    connection = session.get(CalendarConnection, subscription.connection_id) if subscription else None
    if subscription is None or connection is None or connection.member_id != identity.member_id:
        raise NotFound("Subscription not found")

    if visibility is not None:
        if visibility not in VISIBILITIES:
            raise ValueError(f"Invalid visibility: {visibility}")
        subscription.visibility = visibility
    if is_active is not None:
        subscription.is_active = is_active
    subscription.updated_at = utcnow()
    session.add(subscription)
    session.commit()
    session.refresh(subscription)
    return subscription
