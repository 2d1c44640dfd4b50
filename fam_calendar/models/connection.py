"""Google Calendar connection model.

This module defines the CalendarConnection model which stores the OAuth2
credentials a family member granted for reading their Google Calendar.
Connections are written by the OAuth callback, rotated by the sync engine
when access tokens are refreshed, and only removed when the member
explicitly disconnects.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class CalendarConnection(SQLModel, table=True):
    """Stored OAuth2 credentials for one member's Google account.

    Each member has at most one connection (``member_id`` is unique).

    Attributes:
        id: Unique identifier (UUID).
        family_id: Family of the connecting member.
        member_id: The family member who connected the account.
        google_email: Google account email, shown in settings.
        google_user_id: Google's stable user id.
        access_token: Short-lived token for API requests (about an hour).
        refresh_token: Long-lived token used to obtain new access tokens.
            Google omits it on most refresh responses and sometimes on
            re-consent, so a stored value is never replaced by None.
        token_expires_at: When the access token expires (UTC).
        granted_scopes: Space-separated list of granted OAuth scopes.
        last_synced_at: End of the last successful sync run.
        sync_error: User-facing error from the last failed run, or None.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    family_id: UUID = Field(foreign_key="family.id", index=True)
    member_id: UUID = Field(foreign_key="familymember.id", unique=True, index=True)
    google_email: str
    google_user_id: str
    access_token: str
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    granted_scopes: str = Field(default="")
    last_synced_at: datetime | None = None
    sync_error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def scopes(self) -> list[str]:
        return self.granted_scopes.split()
