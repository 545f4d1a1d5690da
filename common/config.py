from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env junto al repo, para no duplicar variables entre servicio y CLI.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


@dataclass(frozen=True)
class Settings:
    db_url: str

    device_host: str
    device_port: int
    device_scheme: str
    poll_interval_ms: int
    request_timeout_ms: int

    max_readings: int
    max_alerts: int
    alert_cooldown_seconds: float
    trends_cache_ttl_seconds: float

    log_level: str


def get_settings() -> Settings:
    # Carga el .env (si existe) sin pisar variables reales del entorno.
    env_file = os.getenv("MONITOR_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    db_url = os.getenv("MONITOR_DB_URL", "sqlite:///monitor.db")

    device_host = os.getenv("DEVICE_HOST", "192.168.4.1")
    device_port = int(os.getenv("DEVICE_PORT", "80"))
    device_scheme = os.getenv("DEVICE_SCHEME", "http")
    poll_interval_ms = int(os.getenv("POLL_INTERVAL_MS", "2000"))
    request_timeout_ms = int(os.getenv("REQUEST_TIMEOUT_MS", "5000"))

    max_readings = int(os.getenv("MAX_READINGS", "10000"))
    max_alerts = int(os.getenv("MAX_ALERTS", "500"))
    alert_cooldown_seconds = float(os.getenv("ALERT_COOLDOWN_SECONDS", "30"))
    trends_cache_ttl_seconds = float(os.getenv("TRENDS_CACHE_TTL_SECONDS", "60"))

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    return Settings(
        db_url=db_url,
        device_host=device_host,
        device_port=device_port,
        device_scheme=device_scheme,
        poll_interval_ms=poll_interval_ms,
        request_timeout_ms=request_timeout_ms,
        max_readings=max_readings,
        max_alerts=max_alerts,
        alert_cooldown_seconds=alert_cooldown_seconds,
        trends_cache_ttl_seconds=trends_cache_ttl_seconds,
        log_level=log_level,
    )
