"""Redirect decision state machine.

    LOOKUP ─┬─ missing ────────────────────────────> NOT_FOUND
            ├─ storage error ──────────────────────> ERROR
            ├─ expires_at <= now ──────────────────> EXPIRED (reason=expired)
            ├─ is_active is false ─────────────────> EXPIRED (reason=inactive)
            └─ track click ─┬─ access_policy set ──> GATED
                            └─ otherwise ──────────> OPEN (original_url)

Expired, inactive and missing links all look the same to visitors; the
``reason`` only survives as a query-string hint. Clicks are tracked for
gated links too, but never for dead ones.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Link

logger = logging.getLogger(__name__)


class RedirectState(str, enum.Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    GATED = "gated"
    OPEN = "open"
    ERROR = "error"


@dataclass(frozen=True)
class RedirectDecision:
    state: RedirectState
    short_code: str
    link_id: Optional[str] = None
    original_url: Optional[str] = None
    reason: Optional[str] = None


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; stored values are always UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(link: Link, now: Optional[datetime] = None) -> bool:
    expires_at = as_utc(link.expires_at)
    if expires_at is None:
        return False
    return expires_at <= (now or datetime.now(timezone.utc))


def resolve(
    db: Session,
    short_code: str,
    on_track: Optional[Callable[[str], None]] = None,
    now: Optional[datetime] = None,
) -> RedirectDecision:
    """
    Resolve a short code to a redirect decision.

    Args:
        db: Database session
        short_code: Untrusted code taken from the request path
        on_track: Called with the link id once the link is known to be live;
            expected to schedule telemetry without blocking
        now: Reference time for the expiry check

    Returns:
        RedirectDecision
    """
    try:
        link = db.query(Link).filter(Link.short_code == short_code).first()
    except SQLAlchemyError:
        logger.exception("Storage error while resolving short code %r", short_code)
        return RedirectDecision(RedirectState.ERROR, short_code, reason="server_error")

    if link is None:
        return RedirectDecision(RedirectState.NOT_FOUND, short_code, reason="not_found")

    if is_expired(link, now):
        return RedirectDecision(RedirectState.EXPIRED, short_code, link_id=link.id, reason="expired")

    if not link.is_active:
        return RedirectDecision(RedirectState.EXPIRED, short_code, link_id=link.id, reason="inactive")

    if on_track is not None:
        try:
            on_track(link.id)
        except Exception:
            logger.warning("Failed to schedule click tracking for %s", short_code, exc_info=True)

    if link.is_gated:
        return RedirectDecision(RedirectState.GATED, short_code, link_id=link.id)

    return RedirectDecision(RedirectState.OPEN, short_code, link_id=link.id, original_url=link.original_url)
