"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Fam Calendar"
    debug: bool = False
    app_url: str = "http://localhost:8000"  # Base URL for OAuth callback and redirects
    settings_path: str = "/settings/calendar"
    log_dir: str = "~/.logs/fam-calendar"

    # Server
    host: str = "0.0.0.0"  # Bind to all interfaces for external access
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./fam_calendar.db"

    # Google Calendar API
    google_client_id: str = ""
    google_client_secret: str = ""
    google_http_timeout_seconds: float = 20.0

    # OAuth state cookie
    oauth_state_cookie: str = "google_oauth_state"
    oauth_state_max_age_seconds: int = 600
    secure_cookies: bool = False

    # Sync settings
    sync_interval_minutes: int = 15
    sync_days_back: int = 7
    sync_days_ahead: int = 60
    sync_max_results: int = 250  # Max events per calendar per run
    token_refresh_margin_minutes: int = 5
    external_event_retention_days: int = 30

    # ICS feeds
    feed_days_ahead: int = 60
    feed_cache_seconds: int = 300
    feed_recurring_instances: int = 4
    feed_token_bytes: int = 24  # 48 hex characters

    @property
    def google_callback_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/api/auth/google/callback"

    def is_google_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


settings = Settings()
