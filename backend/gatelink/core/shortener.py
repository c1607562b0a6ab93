import logging
import secrets
import string
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Link
from .errors import AllocationExhaustedError, StorageError

logger = logging.getLogger(__name__)


# URL-safe alphabet (A-Z, a-z, 0-9, "_", "-"), 64 symbols
CHARSET = string.ascii_letters + string.digits + "_-"

# Single-segment paths served by this app or its frontend. Routing is case-sensitive.
RESERVED_CODES = frozenset({
    'shorten', 'unlock', 'expired', 'health', 'link-details', 'docs', 'redoc',
})


def generate_short_code(length: int = 7) -> str:
    """
    Generate a random URL-safe short code.

    Args:
        length: Length of the code

    Returns:
        A random code that is not a reserved path segment

    Note:
        7 chars over 64 symbols = 64^7 ~ 4.4 * 10^12 combinations
    """
    while True:
        code = ''.join(secrets.choice(CHARSET) for _ in range(length))
        if code not in RESERVED_CODES:
            return code


def allocate_link(
    db: Session,
    original_url: str,
    expires_at: Optional[datetime] = None,
    creator_wallet: Optional[str] = None,
    access_policy: Optional[dict] = None,
    title: Optional[str] = None,
    length: int = 7,
    max_attempts: int = 3,
    code_factory: Callable[[int], str] = generate_short_code,
) -> Link:
    """
    Insert a new link under a freshly generated short code.

    The unique constraint on ``links.short_code`` is the only collision check:
    each attempt inserts and commits, and a constraint violation triggers a
    new code. There is no application-level locking.

    Args:
        db: Database session
        original_url: Validated destination URL
        expires_at: Expiry timestamp, None for a permanent link
        creator_wallet: Creator address, None for anonymous links
        access_policy: Serialized access policy, None for open links
        title: Optional display label
        length: Length of generated codes
        max_attempts: Number of insert attempts before giving up
        code_factory: Callable producing a code of the given length

    Returns:
        The persisted link

    Raises:
        AllocationExhaustedError: every attempt collided with an existing code
        StorageError: the database failed for any other reason
    """
    for attempt in range(1, max_attempts + 1):
        link = Link(
            short_code=code_factory(length),
            original_url=original_url,
            expires_at=expires_at,
            creator_wallet=creator_wallet,
            access_policy=access_policy,
            title=title,
        )
        db.add(link)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(
                "Short code collision on attempt %d/%d: %s", attempt, max_attempts, link.short_code
            )
            continue
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(detail=f"Failed to insert link: {e}") from e

        db.refresh(link)
        return link

    raise AllocationExhaustedError(
        detail=f"Short code allocation failed after {max_attempts} attempts"
    )
