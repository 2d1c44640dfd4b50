"""Fam Calendar integration service."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from fam_calendar import __version__
from fam_calendar.core.config import settings
from fam_calendar.core.cors import AppCORSMiddleware
from fam_calendar.core.database import create_db_and_tables
from fam_calendar.core.scheduler import shutdown_scheduler, start_scheduler
from fam_calendar.routes import auth, feed, feeds, subscriptions, sync, timeline

# Configure logging
log_dir = Path(settings.log_dir).expanduser()
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
# Discovery and transport chatter from the Google client is not useful at INFO
logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Fam Calendar service")
    create_db_and_tables()
    if settings.is_google_configured():
        start_scheduler()
    else:
        logger.warning("Google OAuth client not configured, background sync disabled")
    yield
    # Shutdown
    if settings.is_google_configured():
        shutdown_scheduler()
    logger.info("Fam Calendar service shut down")


app = FastAPI(
    title=settings.app_name,
    description="Google Calendar sync, unified family timeline and subscribable ICS feeds",
    version=__version__,
    lifespan=lifespan,
)

# Configure CORS for external access
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    AppCORSMiddleware,
    exempt_prefixes=(f"{feed.router.prefix}/",),
    allow_origins=origins,
    allow_credentials=origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(sync.router)
app.include_router(subscriptions.router)
app.include_router(timeline.router)
app.include_router(feed.router)
app.include_router(feeds.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
