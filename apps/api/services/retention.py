"""
Food entry retention.

Two stages, run hourly:
1. Archive: entries older than `keep_days` move from `food_entries` to
   `food_entries_archive`.
2. Trim: while the database is over its size budget, delete the oldest batch,
   archive rows first and hot rows only once the archive is empty.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, Optional

from sqlalchemy import delete, select, text
from sqlalchemy.orm import Session

from core.capabilities import get_capabilities
from core.clock import civil_today, shift_days
from core.config import settings
from core.database import dialect_insert, dialect_name
from core.exceptions import SchemaOutdatedError
from models import FoodEntry, FoodEntryArchive

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024 ** 3
MIN_KEEP_DAYS = 1
MAX_KEEP_DAYS = 3650

_ARCHIVE_COLUMNS = (
    "id",
    "user_id",
    "entry_date",
    "taken_at",
    "food_name",
    "calories",
    "protein_g",
    "carbs_g",
    "fat_g",
    "raw_extraction",
    "created_at",
)


def database_size_bytes(db: Session) -> int:
    if dialect_name(db) == "postgresql":
        return int(db.execute(text("SELECT pg_database_size(current_database())")).scalar() or 0)
    page_count = db.execute(text("PRAGMA page_count")).scalar() or 0
    page_size = db.execute(text("PRAGMA page_size")).scalar() or 0
    return int(page_count) * int(page_size)


def archive_old_entries(db: Session, cutoff: date) -> int:
    """Move entries dated before `cutoff` into the archive. Returns rows moved."""
    hot = FoodEntry.__table__
    cold = FoodEntryArchive.__table__

    source = select(*[hot.c[name] for name in _ARCHIVE_COLUMNS]).where(hot.c.entry_date < cutoff)
    stmt = dialect_insert(db, cold).from_select(list(_ARCHIVE_COLUMNS), source)
    db.execute(stmt.on_conflict_do_nothing(index_elements=[cold.c.id]))

    moved = db.execute(delete(hot).where(hot.c.entry_date < cutoff)).rowcount or 0
    db.flush()
    return int(moved)


def _delete_oldest_batch(db: Session, table, batch_size: int) -> int:
    oldest = select(table.c.id).order_by(table.c.entry_date.asc(), table.c.id.asc()).limit(batch_size)
    result = db.execute(delete(table).where(table.c.id.in_(oldest.scalar_subquery())))
    return int(result.rowcount or 0)


def run_retention(
    db: Session,
    *,
    keep_days: Optional[int] = None,
    max_db_size_gb: Optional[float] = None,
    trim_batch_size: Optional[int] = None,
    trim_pass_limit: Optional[int] = None,
    today: Optional[date] = None,
    measure_size: Optional[Callable[[Session], int]] = None,
) -> Dict[str, int]:
    if not get_capabilities(db).food_archive:
        raise SchemaOutdatedError("data retention")

    keep_days = max(MIN_KEEP_DAYS, min(MAX_KEEP_DAYS, int(keep_days or settings.RETENTION_KEEP_DAYS)))
    max_bytes = int(float(max_db_size_gb if max_db_size_gb is not None else settings.RETENTION_MAX_DB_SIZE_GB) * BYTES_PER_GB)
    batch_size = max(1, int(trim_batch_size or settings.RETENTION_TRIM_BATCH_SIZE))
    pass_limit = max(1, int(trim_pass_limit or settings.RETENTION_TRIM_PASS_LIMIT))
    measure = measure_size or database_size_bytes
    today = today or civil_today()

    archived = archive_old_entries(db, shift_days(today, -keep_days))

    size_before = measure(db)
    size = size_before
    trimmed_archive = 0
    trimmed_hot = 0
    passes = 0
    while size > max_bytes and passes < pass_limit:
        passes += 1
        n = _delete_oldest_batch(db, FoodEntryArchive.__table__, batch_size)
        if n:
            trimmed_archive += n
        else:
            n = _delete_oldest_batch(db, FoodEntry.__table__, batch_size)
            trimmed_hot += n
        if not n:
            break
        db.flush()
        size = measure(db)

    result = {
        "keep_days": keep_days,
        "archived": archived,
        "trimmed_archive": trimmed_archive,
        "trimmed_hot": trimmed_hot,
        "trim_passes": passes,
        "db_size_bytes_before": size_before,
        "db_size_bytes_after": size,
    }
    logger.info("Retention run finished", extra={"extra_fields": result})
    return result
