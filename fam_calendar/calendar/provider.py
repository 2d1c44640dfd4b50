"""Google Calendar API client.

Stateless wrapper over the Google endpoints the integration needs: the
OAuth authorization URL and code exchange, token refresh, user info, the
calendar list and event listing. Every network call goes through an
``httplib2.Http`` with a bounded timeout, and every failure is mapped onto
the domain errors in ``fam_calendar.core.errors``.
"""
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from fam_calendar.core.config import Settings, settings
from fam_calendar.core.errors import AuthExpired, ProviderUnavailable

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Read-only access to calendars plus the account email for display
SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events.readonly",
]

# Google may return scopes in a different order or with extras it implies;
# oauthlib treats that as an error unless relaxed.
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")


@dataclass
class TokenGrant:
    """Tokens returned by a code exchange or a refresh."""

    access_token: str
    refresh_token: str | None
    expires_at: datetime
    scopes: list[str] = field(default_factory=list)


@dataclass
class ProviderAccount:
    id: str
    email: str


@dataclass
class ProviderCalendar:
    """One entry of the account's calendar list."""

    id: str
    summary: str
    background_color: str | None = None
    primary: bool = False
    access_role: str = "reader"


@dataclass
class EventTime:
    """A provider start/end value normalized to UTC."""

    timestamp: datetime
    is_all_day: bool
    timezone: str | None


def parse_event_time(value: dict) -> EventTime:
    """Normalize a Google ``start``/``end`` object.

    A ``date`` value is an all-day boundary at midnight UTC without a
    timezone. A ``dateTime`` value is a timed instant converted to UTC; the
    provider's ``timeZone`` is kept for display.
    """
    if value.get("dateTime"):
        timestamp = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
        timezone = value.get("timeZone")
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=_zone(timezone))
        return EventTime(timestamp.astimezone(UTC), False, timezone)
    if value.get("date"):
        day = date.fromisoformat(value["date"])
        return EventTime(datetime(day.year, day.month, day.day, tzinfo=UTC), True, None)
    raise ValueError("Event has no valid time")


def parse_rfc3339(value: str | None) -> datetime | None:
    """Parse a Google timestamp such as ``2024-12-30T09:00:00.000Z``."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)


def _zone(name: str | None):
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone from provider: {name}, assuming UTC")
        return UTC


def _rfc3339(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class GoogleCalendarProvider:
    """Stateless Google Calendar client bound to the app's OAuth client."""

    def __init__(self, config: Settings = settings):
        self.client_id = config.google_client_id
        self.client_secret = config.google_client_secret
        self.redirect_uri = config.google_callback_url
        self.timeout = config.google_http_timeout_seconds

    # -- OAuth -----------------------------------------------------------

    def _flow(self) -> Flow:
        client_config = {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }
        # The flow object does not survive between the redirect and the
        # callback, so no PKCE verifier can be carried over.
        return Flow.from_client_config(
            client_config,
            scopes=SCOPES,
            redirect_uri=self.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, state: str) -> str:
        """Build the consent URL. Offline access + consent to get a refresh token."""
        url, _ = self._flow().authorization_url(
            state=state,
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
        )
        return url

    def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens."""
        flow = self._flow()
        try:
            token = flow.fetch_token(code=code, timeout=self.timeout)
        except Exception as e:
            logger.error(f"Failed to exchange authorization code: {e}")
            raise ProviderUnavailable("Failed to exchange authorization code") from e

        if "expires_at" in token:
            expires_at = datetime.fromtimestamp(token["expires_at"], UTC)
        else:
            expires_at = datetime.now(UTC) + timedelta(seconds=int(token.get("expires_in", 3600)))
        scopes = token.get("scope") or []
        if isinstance(scopes, str):
            scopes = scopes.split()
        return TokenGrant(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token"),
            expires_at=expires_at,
            scopes=list(scopes),
        )

    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Obtain a new access token.

        Raises AuthExpired when Google rejects the refresh token (revoked or
        expired grant) and ProviderUnavailable on timeouts or server errors.
        """
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )
        try:
            credentials.refresh(google_auth_httplib2.Request(self._http()))
        except RefreshError as e:
            if getattr(e, "retryable", False):
                raise ProviderUnavailable("Token endpoint unavailable") from e
            raise AuthExpired("Refresh token rejected") from e
        except (TransportError, httplib2.HttpLib2Error, OSError) as e:
            raise ProviderUnavailable("Token refresh failed") from e

        # google-auth keeps expiry as a naive UTC datetime
        if credentials.expiry is not None:
            expires_at = credentials.expiry.replace(tzinfo=UTC)
        else:
            expires_at = datetime.now(UTC) + timedelta(hours=1)
        return TokenGrant(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expires_at=expires_at,
            scopes=list(credentials.granted_scopes or []),
        )

    # -- API calls -------------------------------------------------------

    def _http(self) -> httplib2.Http:
        return httplib2.Http(timeout=self.timeout)

    def _service(self, api: str, version: str, access_token: str):
        authed_http = google_auth_httplib2.AuthorizedHttp(
            Credentials(token=access_token), http=self._http()
        )
        return build(api, version, http=authed_http, cache_discovery=False)

    def _execute(self, request, what: str) -> dict:
        try:
            return request.execute()
        except HttpError as e:
            raise ProviderUnavailable(f"{what}: Google returned {e.resp.status}") from e
        except (TransportError, httplib2.HttpLib2Error, OSError) as e:
            # socket timeouts surface as TimeoutError, an OSError
            raise ProviderUnavailable(f"{what}: {type(e).__name__}") from e

    def fetch_user_info(self, access_token: str) -> ProviderAccount:
        service = self._service("oauth2", "v2", access_token)
        info = self._execute(service.userinfo().get(), "Fetch user info")
        return ProviderAccount(id=str(info["id"]), email=info.get("email", ""))

    def list_calendars(self, access_token: str) -> list[ProviderCalendar]:
        service = self._service("calendar", "v3", access_token)
        calendars = []
        page_token = None
        while True:
            result = self._execute(
                service.calendarList().list(pageToken=page_token),
                "Fetch calendar list",
            )
            for entry in result.get("items", []):
                calendars.append(
                    ProviderCalendar(
                        id=entry["id"],
                        summary=entry.get("summaryOverride") or entry.get("summary", entry["id"]),
                        background_color=entry.get("backgroundColor"),
                        primary=entry.get("primary") is True,
                        access_role=entry.get("accessRole", "reader"),
                    )
                )
            page_token = result.get("nextPageToken")
            if not page_token:
                return calendars

    def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
        max_results: int,
    ) -> list[dict]:
        """List event instances in a window, recurring events expanded."""
        service = self._service("calendar", "v3", access_token)
        result = self._execute(
            service.events().list(
                calendarId=calendar_id,
                timeMin=_rfc3339(time_min),
                timeMax=_rfc3339(time_max),
                singleEvents=True,
                orderBy="startTime",
                maxResults=max_results,
            ),
            f"Fetch events for {calendar_id}",
        )
        return result.get("items", [])[:max_results]


_provider: GoogleCalendarProvider | None = None


def get_provider() -> GoogleCalendarProvider:
    """Dependency returning the shared provider client."""
    global _provider
    if _provider is None:
        _provider = GoogleCalendarProvider()
    return _provider
