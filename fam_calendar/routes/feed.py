"""Public ICS feed endpoint.

The token in the URL is the only credential, so responses carry a
permissive CORS header and never reveal why a lookup failed.
"""
import hashlib
import logging
import re

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.engine import Engine
from sqlmodel import Session

from fam_calendar.calendar.feeds import clean_token, get_feed_by_token, record_feed_access, token_prefix
from fam_calendar.calendar.ics import IncludeFlags, generate
from fam_calendar.core.background import DetachedTask
from fam_calendar.core.config import settings
from fam_calendar.core.database import get_session
from fam_calendar.core.errors import GenerationFailure, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar/feed", tags=["feed"])

NOT_FOUND_BODY = "Calendar feed not found"


def compute_etag(content: bytes) -> str:
    return '"' + hashlib.sha256(content).hexdigest() + '"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """Match an If-None-Match header (single, weak or comma-separated)."""
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False


def feed_filename(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", name) + ".ics"


def _record_access(bind: Engine, token: str) -> None:
    with Session(bind) as session:
        record_feed_access(session, token)


@router.get("/{token}")
def get_feed(
    token: str,
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    """
    Serve a feed as ICS.

    Answers 304 with an empty body when If-None-Match carries the current
    ETag. Access tracking runs after the response and cannot fail it.
    """
    token = clean_token(token)
    logger.info(f"ICS feed request for {token_prefix(token)}")

    feed = get_feed_by_token(session, token)
    if feed is None:
        logger.warning(f"Invalid calendar feed token {token_prefix(token)}")
        return PlainTextResponse(NOT_FOUND_BODY, status_code=404)

    background_tasks.add_task(
        DetachedTask("feed_access", _record_access, session.get_bind(), token)
    )

    try:
        content = generate(session, feed.family_id, feed.member_id, IncludeFlags.from_feed(feed))
    except NotFound:
        logger.error(f"Family not found for feed {feed.id}")
        return PlainTextResponse(NOT_FOUND_BODY, status_code=404)
    except GenerationFailure:
        return PlainTextResponse("Internal server error", status_code=500)

    etag = compute_etag(content)
    if etag_matches(request.headers.get("if-none-match"), etag):
        logger.info("Returning 304 Not Modified")
        return Response(
            status_code=304,
            headers={"ETag": etag, "Access-Control-Allow-Origin": "*"},
        )

    return Response(
        content=content,
        media_type="text/calendar; charset=utf-8",
        headers={
            "Content-Disposition": f'inline; filename="{feed_filename(feed.name)}"',
            "Cache-Control": f"public, max-age={settings.feed_cache_seconds}",
            "ETag": etag,
            "Access-Control-Allow-Origin": "*",
        },
    )


@router.options("/{token}")
async def feed_preflight(token: str):
    """CORS preflight for the feed URL."""
    return Response(
        status_code=204,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, If-None-Match",
            "Access-Control-Max-Age": "86400",
        },
    )
