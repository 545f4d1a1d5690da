from __future__ import annotations

from typing import Optional
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .config import get_settings


logger = logging.getLogger(__name__)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url


def get_engine(url: Optional[str] = None) -> Engine:
    """Crea el engine SQLAlchemy del store de series temporales.

    Por defecto usa el archivo SQLite de ``MONITOR_DB_URL``. Las escrituras
    llegan desde hilos de ``asyncio.to_thread`` y desde el threadpool de
    FastAPI, así que SQLite se abre con ``check_same_thread=False``.
    """
    if url is None:
        url = get_settings().db_url

    kwargs: dict = {"future": True, "pool_pre_ping": True}
    if _is_sqlite(url):
        kwargs["connect_args"] = {"check_same_thread": False}
        # Una base en memoria solo vive mientras exista su conexión.
        if _is_memory(url):
            kwargs["poolclass"] = StaticPool

    logger.info("[DB] Creating engine url=%s", url)

    engine = create_engine(url, **kwargs)

    # Test de conexión: deja en logs si el store realmente abre.
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Connection test OK")
    except Exception:
        logger.exception("[DB] Connection test FAILED")

    return engine
