"""
Schema capability flags.

Optional features (admin plan settings, rollover, autopilot, archive
retention) may run against a database that has not been fully migrated yet.
Instead of catching storage errors at every call site, the schema is inspected
once per engine and features consult these flags.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Union

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaCapabilities:
    plan_settings: bool
    rollover_settings: bool
    autopilot: bool
    premium_pass: bool
    food_archive: bool


_ROLLOVER_COLUMNS = {"rollover_enabled", "rollover_cap"}
_AUTOPILOT_COLUMNS = {"autopilot_enabled", "autopilot_mode", "autopilot_last_review_week"}
_PASS_COLUMNS = {"premium_pass", "premium_pass_expires_at", "premium_pass_note", "premium_pass_granted_at"}

_cache: Dict[str, SchemaCapabilities] = {}


def detect_capabilities(bind: Union[Engine, Connection]) -> SchemaCapabilities:
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())
    profile_columns = set()
    if "user_profiles" in tables:
        profile_columns = {c["name"] for c in inspector.get_columns("user_profiles")}

    caps = SchemaCapabilities(
        plan_settings="app_admin_settings" in tables,
        rollover_settings=_ROLLOVER_COLUMNS <= profile_columns,
        autopilot=_AUTOPILOT_COLUMNS <= profile_columns,
        premium_pass=_PASS_COLUMNS <= profile_columns,
        food_archive="food_entries_archive" in tables,
    )
    logger.info(f"Schema capabilities detected: {caps}")
    return caps


def get_capabilities(db: Session) -> SchemaCapabilities:
    bind = db.get_bind()
    engine = getattr(bind, "engine", bind)
    key = str(engine.url)
    caps = _cache.get(key)
    if caps is None:
        caps = detect_capabilities(db.connection())
        _cache[key] = caps
    return caps


def reset_capabilities_cache() -> None:
    """Forget detected flags (after migrations, and between tests)."""
    _cache.clear()
