"""Store durable de series temporales (lecturas, alertas y settings).

Contrato:
- Escrituras append-only con id asignado por el store.
- Lecturas por rango de ``timestamp`` (inclusive).
- Retención acotada: tras cada inserción, si se supera el techo, se eliminan
  los registros más viejos POR ORDEN DE INSERCIÓN (id), no por timestamp.
  Inserción y evicción van en la misma transacción.
- Cada operación hace commit antes de retornar: lo escrito sobrevive a un
  reinicio y es visible para cualquier lectura posterior.

Los errores del backend se propagan como StorageError al caller.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Union

import orjson
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.clock import Clock, now_ms
from ..core.domain.alert import Alert
from ..core.domain.reading import Reading
from ..errors import StorageError
from .schema import ensure_schema

logger = logging.getLogger(__name__)

_HOUR_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class StoreConfig:
    """Techos de retención del store."""
    max_readings: int = 10_000
    max_alerts: int = 500


def _dumps(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


class TimeSeriesStore:
    """Persistencia de Readings/Alerts/settings sobre SQLAlchemy."""

    def __init__(
        self,
        engine: Engine,
        config: Optional[StoreConfig] = None,
        *,
        clock: Clock = now_ms,
        create_schema: bool = True,
    ):
        self._engine = engine
        self._config = config or StoreConfig()
        self._clock = clock
        if create_schema:
            with self._operation("ensure_schema"):
                ensure_schema(engine)

    @property
    def config(self) -> StoreConfig:
        return self._config

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        try:
            yield
        except (SQLAlchemyError, orjson.JSONEncodeError, OverflowError) as e:
            # JSONEncodeError/OverflowError: valores no serializables o fuera de int64.
            logger.error("[STORE] %s failed err=%s", name, type(e).__name__)
            raise StorageError(name, e) from e

    @contextmanager
    def _write(self, name: str) -> Iterator[Connection]:
        with self._operation(name), self._engine.begin() as conn:
            yield conn

    @contextmanager
    def _read(self, name: str) -> Iterator[Connection]:
        with self._operation(name), self._engine.connect() as conn:
            yield conn

    # ========== READINGS ==========

    def save_reading(self, reading: Union[Reading, Mapping[str, Any]]) -> int:
        """Agrega una lectura y aplica el techo de retención.

        Returns:
            id asignado por el store
        """
        record = reading.to_dict() if isinstance(reading, Reading) else dict(reading)
        record.pop("id", None)
        if not record.get("timestamp"):
            record["timestamp"] = self._clock()
        timestamp = int(record["timestamp"])
        record["timestamp"] = timestamp

        with self._write("save_reading") as conn:
            reading_id = conn.execute(
                text("INSERT INTO readings (timestamp, payload) VALUES (:ts, :payload)"),
                {"ts": timestamp, "payload": _dumps(record)},
            ).lastrowid
            evicted = self._evict(conn, "readings", self._config.max_readings)

        if evicted:
            logger.debug("[STORE] Evicted %d oldest readings", evicted)
        return int(reading_id)

    def get_readings(self, start: int, end: int) -> list[dict]:
        """Lecturas con ``start <= timestamp <= end``, ordenadas por (timestamp, id)."""
        with self._read("get_readings") as conn:
            rows = conn.execute(
                text(
                    """
                    SELECT id, timestamp, payload
                    FROM readings
                    WHERE timestamp BETWEEN :start AND :end
                    ORDER BY timestamp ASC, id ASC
                    """
                ),
                {"start": int(start), "end": int(end)},
            ).fetchall()
        return [self._reading_record(row) for row in rows]

    def get_readings_last_hours(self, hours: float) -> list[dict]:
        end = self._clock()
        start = end - int(hours * _HOUR_MS)
        return self.get_readings(start, end)

    def get_latest_reading(self) -> Optional[dict]:
        with self._read("get_latest_reading") as conn:
            row = conn.execute(
                text(
                    """
                    SELECT id, timestamp, payload
                    FROM readings
                    ORDER BY timestamp DESC, id DESC
                    LIMIT 1
                    """
                )
            ).fetchone()
        return self._reading_record(row) if row else None

    def count_readings(self) -> int:
        with self._read("count_readings") as conn:
            return int(conn.execute(text("SELECT COUNT(*) FROM readings")).scalar_one())

    @staticmethod
    def _reading_record(row) -> dict:
        record = orjson.loads(row.payload)
        record["id"] = int(row.id)
        record["timestamp"] = int(row.timestamp)
        return record

    # ========== ALERTS ==========

    def save_alert(self, alert: Union[Alert, Mapping[str, Any]]) -> int:
        """Persiste una alerta (siempre como no reconocida) y aplica el techo."""
        data = alert.to_dict() if isinstance(alert, Alert) else dict(alert)
        params = {
            "ts": int(data.get("timestamp") or self._clock()),
            "severity": str(data["severity"]),
            "title": str(data.get("title", "")),
            "description": str(data.get("description", "")),
            "key": str(data["key"]),
        }

        with self._write("save_alert") as conn:
            alert_id = conn.execute(
                text(
                    """
                    INSERT INTO alerts (timestamp, severity, title, description, alert_key, acknowledged)
                    VALUES (:ts, :severity, :title, :description, :key, 0)
                    """
                ),
                params,
            ).lastrowid
            self._evict(conn, "alerts", self._config.max_alerts)

        return int(alert_id)

    def get_alerts(self, acknowledged: Optional[bool] = None) -> list[dict]:
        """Alertas ordenadas por timestamp descendente, opcionalmente filtradas."""
        query = """
            SELECT id, timestamp, severity, title, description, alert_key, acknowledged
            FROM alerts
        """
        params: dict[str, Any] = {}
        if acknowledged is not None:
            query += " WHERE acknowledged = :ack"
            params["ack"] = 1 if acknowledged else 0
        query += " ORDER BY timestamp DESC, id DESC"

        with self._read("get_alerts") as conn:
            rows = conn.execute(text(query), params).fetchall()

        return [
            {
                "id": int(row.id),
                "severity": row.severity,
                "title": row.title,
                "description": row.description,
                "key": row.alert_key,
                "timestamp": int(row.timestamp),
                "acknowledged": bool(row.acknowledged),
            }
            for row in rows
        ]

    def acknowledge_alert(self, alert_id: int) -> bool:
        """Marca la alerta como reconocida. False si no existe (no es error)."""
        with self._write("acknowledge_alert") as conn:
            updated = conn.execute(
                text("UPDATE alerts SET acknowledged = 1 WHERE id = :id"),
                {"id": int(alert_id)},
            ).rowcount
        return updated > 0

    def clear_alerts(self) -> int:
        """Elimina todas las alertas. Retorna cuántas había."""
        with self._write("clear_alerts") as conn:
            deleted = conn.execute(text("DELETE FROM alerts")).rowcount
        logger.info("[STORE] Cleared %d alerts", deleted)
        return deleted

    # ========== SETTINGS ==========

    def save_setting(self, key: str, value: Any) -> None:
        """Guarda un setting (last-write-wins)."""
        with self._write("save_setting") as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO settings (key, value, updated_at)
                    VALUES (:key, :value, :updated_at)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """
                ),
                {"key": key, "value": _dumps(value), "updated_at": self._clock()},
            )

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self._read("get_setting") as conn:
            row = conn.execute(
                text("SELECT value FROM settings WHERE key = :key"),
                {"key": key},
            ).fetchone()
        return orjson.loads(row.value) if row else default

    def get_all_settings(self) -> dict[str, Any]:
        with self._read("get_all_settings") as conn:
            rows = conn.execute(text("SELECT key, value FROM settings ORDER BY key")).fetchall()
        return {row.key: orjson.loads(row.value) for row in rows}

    # ========== RETENCIÓN ==========

    @staticmethod
    def _evict(conn: Connection, table: str, ceiling: int) -> int:
        """Elimina el exceso sobre ``ceiling`` por orden de inserción (id ASC)."""
        count = int(conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one())
        excess = count - ceiling
        if excess <= 0:
            return 0

        conn.execute(
            text(
                f"""
                DELETE FROM {table}
                WHERE id IN (SELECT id FROM {table} ORDER BY id ASC LIMIT :excess)
                """
            ),
            {"excess": excess},
        )
        return excess
