"""
Seed data for development.
Creates the dining tables printed on the demo QR codes.
"""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rest_api.models import DiningTable
from shared.config.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TABLE_COUNT = 12


def seed(db: Session, table_count: int = DEFAULT_TABLE_COUNT) -> None:
    """
    Create tables "1".."N" when the registry is empty.

    Idempotent: does nothing once any table exists.
    """
    existing = db.scalar(select(func.count(DiningTable.id)))
    if existing:
        logger.debug("Seed skipped, dining tables already present", count=existing)
        return

    for number in range(1, table_count + 1):
        db.add(DiningTable(static_id=str(number), name=f"Table {number}", is_active=True))
    db.commit()
    logger.info("Seeded dining tables", count=table_count)
