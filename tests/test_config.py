"""Tests de configuración (.env + entorno) y del engine de base de datos."""

from sqlalchemy import text

from common.config import get_settings
from common.db import get_engine


def _isolate(monkeypatch, *names):
    # load_dotenv escribe en os.environ; setenv+delenv asegura que se restaure.
    for name in names:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv("MONITOR_ENV_FILE", str(tmp_path / "missing.env"))
    _isolate(monkeypatch, "MONITOR_DB_URL", "DEVICE_HOST", "DEVICE_PORT", "POLL_INTERVAL_MS", "LOG_LEVEL")

    settings = get_settings()

    assert settings.db_url == "sqlite:///monitor.db"
    assert settings.device_host == "192.168.4.1"
    assert settings.device_port == 80
    assert settings.poll_interval_ms == 2000
    assert settings.log_level == "INFO"


def test_env_file_does_not_override_real_env(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DEVICE_HOST=from-dotenv\nDEVICE_PORT=9000\n")
    monkeypatch.setenv("MONITOR_ENV_FILE", str(env_file))
    _isolate(monkeypatch, "DEVICE_HOST")
    monkeypatch.setenv("DEVICE_PORT", "8080")

    settings = get_settings()

    assert settings.device_host == "from-dotenv"
    assert settings.device_port == 8080


def test_in_memory_engine_shares_connection():
    engine = get_engine("sqlite://")

    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE t (x INTEGER)"))
        conn.execute(text("INSERT INTO t VALUES (1)"))
    with engine.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM t")).scalar_one() == 1
