"""Create the premium entitlement tables, waiting for the database to come up."""

import logging
import time
from typing import Callable

from scripts._path import add_root

add_root()

from sqlalchemy.exc import OperationalError

from database import Base, engine
import models  # noqa: F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _retry(operation: Callable[[], None], *, retries: int = 7, delay: float = 3.0) -> None:
    for attempt in range(1, retries + 1):
        try:
            operation()
            return
        except OperationalError as exc:
            if attempt == retries:
                raise
            logger.warning(
                "Database not ready yet (attempt %d/%d). Retrying in %.1f seconds: %s",
                attempt,
                retries,
                delay,
                exc,
            )
            time.sleep(delay)


def init_db() -> None:
    logger.info("Starting database bootstrap.")
    try:
        _retry(lambda: Base.metadata.create_all(bind=engine))
    except OperationalError:
        logger.error("Database initialization failed.", exc_info=True)
        raise
    logger.info("SQLAlchemy model tables ensured: %s", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    init_db()
