import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import RedirectResponse
from slowapi import Limiter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..core.access import AccessVerifier
from ..core.errors import (
    AccessDeniedError,
    InvalidRequestError,
    LinkNotFoundError,
    RateLimitedError,
    StorageError,
    UnsafeUrlError,
)
from ..core.rate_limit import AdmissionResult, TieredRateLimiter, identity_key, SCOPE_DAILY
from ..core.resolver import RedirectDecision, RedirectState, as_utc, is_expired, resolve
from ..core.shortener import allocate_link
from ..core.telemetry import TelemetryRecorder
from ..database import get_db
from ..dependencies import get_access_verifier, get_rate_limiter, get_safety_checker, get_telemetry
from ..models import Link
from ..schemas.link import LinkCreate, LinkCreated, LinkDetails, LinkStats, Quota, UnlockRequest
from ..services.safety import SafetyChecker
from ..utils.validators import get_client_ip, is_valid_url

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(
    key_func=get_client_ip,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI or "memory://",
    swallow_errors=True,
)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


EXPIRED_PAGE_HTML = """<!DOCTYPE html>
<html><head><meta charset="UTF-8"><title>Link unavailable</title></head>
<body style="font-family: Arial; text-align: center; padding: 50px;">
    <h1>This link is no longer available</h1>
    <p>The short link does not exist, has expired or was deactivated.</p>
    <a href="/">Create a new link</a>
</body></html>
"""


def compute_expiry(link_data: LinkCreate, now: datetime) -> datetime:
    """
    Work out the expiry timestamp for a new link.

    ``expiresIn`` (days) wins over ``expiresAt``; with neither the default
    expiry applies. The result is always UTC.
    """
    if link_data.expires_in is not None:
        return now + timedelta(days=link_data.expires_in)

    if link_data.expires_at is not None:
        expires_at = link_data.expires_at.astimezone(timezone.utc)
        if expires_at <= now:
            raise InvalidRequestError("expiresAt must be in the future")
        return expires_at

    return now + timedelta(days=settings.DEFAULT_EXPIRY_DAYS)


def rate_limit_suggestion(identity: str, admission: AdmissionResult, rate_limiter: TieredRateLimiter) -> str:
    if rate_limiter.tier_for(identity) is rate_limiter.anonymous:
        return (
            f"Connect a wallet to raise your limit to {rate_limiter.wallet.daily.amount} links per day "
            f"and {rate_limiter.wallet.minute.amount} per minute."
        )
    if admission.scope == SCOPE_DAILY:
        return "Daily quota reached. Try again after the reset time."
    return "Slow down and try again in a minute."


def site_url(request: Request, path: str, params: Optional[dict] = None) -> str:
    url = str(request.base_url).rstrip("/") + path
    if params:
        url += "?" + urlencode(params)
    return url


def redirect_target(request: Request, decision: RedirectDecision) -> str:
    """Map a redirect decision to the URL the visitor is sent to"""
    if decision.state == RedirectState.OPEN:
        return decision.original_url
    if decision.state == RedirectState.GATED:
        return site_url(request, f"{settings.UNLOCK_PATH.rstrip('/')}/{quote(decision.short_code, safe='')}")
    if decision.state in (RedirectState.NOT_FOUND, RedirectState.EXPIRED):
        return site_url(request, settings.EXPIRED_PATH, {"reason": decision.reason})
    return site_url(request, settings.ERROR_PATH, {"error": "server_error"})


def find_link(db: Session, short_code: str) -> Optional[Link]:
    try:
        return db.query(Link).filter(Link.short_code == short_code).first()
    except SQLAlchemyError as e:
        raise StorageError(detail=f"Failed to look up short code {short_code!r}: {e}") from e


@router.post("/shorten", status_code=201)
async def create_short_link(
    request: Request,
    link_data: LinkCreate,
    db: Session = Depends(get_db),
    rate_limiter: TieredRateLimiter = Depends(get_rate_limiter),
    safety_checker: SafetyChecker = Depends(get_safety_checker),
    access_verifier: AccessVerifier = Depends(get_access_verifier),
):
    """
    Create a short link.

    Pipeline: validation -> rate limit -> safety check -> code allocation.
    """
    # Validate URL
    is_valid, error_msg = is_valid_url(link_data.url)
    if not is_valid:
        raise InvalidRequestError(error_msg)

    policy = link_data.access_policy
    if policy is not None and not access_verifier.supports_chain(policy.chain_id):
        raise InvalidRequestError(f"Unsupported chainId {policy.chain_id}")

    now = datetime.now(timezone.utc)
    expires_at = compute_expiry(link_data, now)

    # Rate limit by wallet when provided, otherwise by client IP
    identity = identity_key(link_data.creator_wallet, get_client_ip(request))
    admission = rate_limiter.admit(identity)
    if not admission.allowed:
        raise RateLimitedError(
            scope=admission.scope,
            reset=int(admission.reset_at * 1000) if admission.reset_at else None,
            remaining=admission.remaining,
            limit=admission.limit,
            suggestion=rate_limit_suggestion(identity, admission, rate_limiter),
        )

    # Check for malware / phishing
    if await safety_checker.is_unsafe(link_data.url):
        raise UnsafeUrlError()

    link = allocate_link(
        db,
        original_url=link_data.url,
        expires_at=expires_at,
        creator_wallet=link_data.creator_wallet,
        access_policy=policy.to_storage() if policy is not None else None,
        title=link_data.title,
        length=settings.SHORT_CODE_LENGTH,
        max_attempts=settings.SHORT_CODE_MAX_ATTEMPTS,
    )
    logger.info("Created link %s (gated=%s, identity=%s)", link.short_code, link.is_gated, identity)

    created = LinkCreated(
        id=link.id,
        short_code=link.short_code,
        original_url=link.original_url,
        short_url=f"{settings.BASE_URL.rstrip('/')}/{link.short_code}",
        created_at=as_utc(link.created_at),
        expires_at=as_utc(link.expires_at),
        quota=Quota(remaining=admission.remaining, limit=admission.limit),
    )
    return {"success": True, "data": created.model_dump(by_alias=True, mode="json")}


@router.post("/unlock")
@limiter.limit(settings.UNLOCK_RATE_LIMIT)
async def unlock_link(
    request: Request,
    unlock_data: UnlockRequest,
    db: Session = Depends(get_db),
    access_verifier: AccessVerifier = Depends(get_access_verifier),
):
    """
    Verify a holder against a gated link's policy and reveal the destination.

    403 means the holder does not qualify; 500 with ``retryable`` means the
    chain could not be read.
    """
    link = find_link(db, unlock_data.short_code)
    if link is None or not link.is_active or is_expired(link):
        raise LinkNotFoundError()

    decision = await access_verifier.verify(link.access_policy, unlock_data.holder_address)
    if not decision.allowed:
        logger.info("Unlock denied for %s: %s", link.short_code, decision.reason)
        raise AccessDeniedError(decision.reason)

    return {"success": True, "originalUrl": link.original_url}


@router.get("/link-details")
async def get_link_details(slug: Optional[str] = None, db: Session = Depends(get_db)):
    """
    Public metadata for the unlock page.

    Never includes the original URL.
    """
    if not slug:
        raise InvalidRequestError("Slug is required")

    link = find_link(db, slug)
    if link is None:
        raise LinkNotFoundError()

    details = LinkDetails(
        short_code=link.short_code,
        title=link.title,
        access_policy=link.access_policy or None,
        created_at=as_utc(link.created_at),
    )
    return {"success": True, "data": details.model_dump(by_alias=True, mode="json")}


@router.get("/stats/{slug}")
async def get_link_stats(slug: str, db: Session = Depends(get_db)):
    """Click statistics for a single link. Gated destinations stay hidden."""
    link = find_link(db, slug)
    if link is None:
        raise LinkNotFoundError()

    stats = LinkStats(
        short_code=link.short_code,
        click_count=link.clicks_count,
        created_at=as_utc(link.created_at),
        expires_at=as_utc(link.expires_at),
        is_active=link.is_active,
        gated=link.is_gated,
        original_url=None if link.is_gated else link.original_url,
    )
    return {"success": True, "data": stats.model_dump(by_alias=True, mode="json", exclude_none=True)}


async def redirect_to_url(
    short_code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    telemetry: TelemetryRecorder = Depends(get_telemetry),
):
    """
    Redirect a short code.

    Always answers with a redirect, never JSON. Click tracking runs after
    the response is sent.
    """
    referrer = request.headers.get("referer")
    user_agent = request.headers.get("user-agent", "unknown")

    def track(link_id: str) -> None:
        background_tasks.add_task(telemetry.record, link_id, referrer, user_agent)

    try:
        decision = resolve(db, short_code, on_track=track)
        target = redirect_target(request, decision)
    except Exception:
        logger.exception("Unexpected error while redirecting %r", short_code)
        target = site_url(request, settings.ERROR_PATH, {"error": "server_error"})

    return RedirectResponse(url=target, status_code=302, headers=NO_CACHE_HEADERS)


async def swallow_post(short_code: str):
    """Misdirected POSTs to a short code (ad blockers, prefetchers) get an empty 204"""
    return Response(status_code=204)
