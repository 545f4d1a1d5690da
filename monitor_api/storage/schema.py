"""Esquema SQLite del store de series temporales.

``AUTOINCREMENT`` garantiza ids estrictamente crecientes y nunca reutilizados,
que es el orden de inserción usado para la evicción.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS readings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp INTEGER NOT NULL,
        payload TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_readings_timestamp ON readings (timestamp)",
    """
    CREATE TABLE IF NOT EXISTS alerts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp INTEGER NOT NULL,
        severity TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        alert_key TEXT NOT NULL,
        acknowledged INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_alerts_timestamp ON alerts (timestamp)",
    "CREATE INDEX IF NOT EXISTS ix_alerts_acknowledged ON alerts (acknowledged)",
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
)


def ensure_schema(engine: Engine) -> None:
    """Crea tablas e índices si no existen. Seguro de llamar varias veces."""
    with engine.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))
    logger.info("[STORE] Schema ready")
