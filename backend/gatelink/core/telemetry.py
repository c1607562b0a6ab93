import logging
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Click, Link

logger = logging.getLogger(__name__)

MAX_HEADER_LENGTH = 512


class TelemetryRecorder:
    """
    Best-effort click accounting.

    ``record`` is meant to run after the response has been sent. It performs
    two independent writes, each in its own transaction: an atomic increment
    of ``links.clicks_count`` and an insert into ``clicks``. Either may fail
    without affecting the other. Failures are logged and never raised or
    retried.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record(self, link_id: str, referrer: Optional[str], user_agent: Optional[str]) -> None:
        try:
            db = self.session_factory()
        except SQLAlchemyError:
            logger.warning("Telemetry skipped for link %s: no database session", link_id, exc_info=True)
            return

        try:
            self._increment(db, link_id)
            self._insert_click(db, link_id, referrer, user_agent)
        finally:
            db.close()

    def _increment(self, db: Session, link_id: str) -> None:
        try:
            db.execute(
                update(Link)
                .where(Link.id == link_id)
                .values(clicks_count=Link.clicks_count + 1)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Failed to increment click counter for link %s", link_id, exc_info=True)

    def _insert_click(self, db: Session, link_id: str, referrer: Optional[str], user_agent: Optional[str]) -> None:
        try:
            db.add(Click(
                link_id=link_id,
                referrer=referrer[:MAX_HEADER_LENGTH] if referrer else None,
                user_agent=user_agent[:MAX_HEADER_LENGTH] if user_agent else None,
            ))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Failed to record click event for link %s", link_id, exc_info=True)
