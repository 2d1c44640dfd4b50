"""Google Calendar OAuth and connection routes."""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from fam_calendar.calendar.oauth import (
    begin_authorization,
    complete_authorization,
    connection_info,
    disconnect,
    get_connection,
    verify_state,
)
from fam_calendar.calendar.provider import GoogleCalendarProvider, get_provider
from fam_calendar.core.config import settings
from fam_calendar.core.database import get_session
from fam_calendar.core.errors import InvalidState
from fam_calendar.core.identity import Identity, get_identity, get_optional_auth_user_id, resolve_identity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _settings_redirect(**params: str) -> RedirectResponse:
    url = f"{settings.app_url.rstrip('/')}{settings.settings_path}?{urlencode(params)}"
    response = RedirectResponse(url, status_code=307)
    response.delete_cookie(settings.oauth_state_cookie, path="/")
    return response


@router.get("/api/auth/google")
async def google_authorize(
    identity: Identity = Depends(get_identity),
    provider: GoogleCalendarProvider = Depends(get_provider),
):
    """
    Start the Google Calendar OAuth flow.

    Stores a random state nonce in an httpOnly cookie and redirects to
    Google's consent screen. Returns 503 when no OAuth client is configured.
    """
    if not settings.is_google_configured():
        logger.error("Google OAuth client is not configured")
        raise HTTPException(status_code=503, detail="Google Calendar integration is not configured")

    auth = begin_authorization(provider, identity)
    response = RedirectResponse(auth.redirect_url, status_code=307)
    response.set_cookie(
        settings.oauth_state_cookie,
        auth.state,
        max_age=settings.oauth_state_max_age_seconds,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        path="/",
    )
    return response


@router.get("/api/auth/google/callback")
def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    auth_user_id: str | None = Depends(get_optional_auth_user_id),
    session: Session = Depends(get_session),
    provider: GoogleCalendarProvider = Depends(get_provider),
):
    """
    Complete the OAuth flow.

    Always redirects back to the calendar settings page, with
    ``success=true`` or an ``error`` code: the provider's own error,
    ``no_code``, ``invalid_state``, ``no_member`` or ``connection_failed``.
    The state cookie is cleared either way.
    """
    if error:
        logger.warning(f"Google OAuth returned error: {error}")
        return _settings_redirect(error=error)
    if not code:
        logger.warning("OAuth callback without authorization code")
        return _settings_redirect(error="no_code")

    expected_state = request.cookies.get(settings.oauth_state_cookie)
    identity = resolve_identity(session, auth_user_id) if auth_user_id else None
    try:
        if identity is None:
            # State is checked before reporting a missing member
            verify_state(state, expected_state)
            logger.error(f"No family member for user {auth_user_id}")
            return _settings_redirect(error="no_member")
        complete_authorization(session, provider, identity, code, state, expected_state)
    except InvalidState as e:
        logger.warning(f"OAuth state check failed: {e}")
        return _settings_redirect(error="invalid_state")
    except Exception as e:
        logger.error(f"Failed to connect Google Calendar: {e}")
        return _settings_redirect(error="connection_failed")

    return _settings_redirect(success="true")


@router.get("/api/calendar/connection")
async def get_calendar_connection(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Return the caller's Google Calendar connection status (no tokens)."""
    connection = get_connection(session, identity.member_id)
    if connection is None:
        return {"connected": False}
    return connection_info(connection)


@router.delete("/api/calendar/connection")
async def delete_calendar_connection(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Disconnect Google Calendar, removing subscriptions and cached events."""
    if not disconnect(session, identity.member_id):
        raise HTTPException(status_code=404, detail="No Google Calendar connected")
    return {"disconnected": True}
