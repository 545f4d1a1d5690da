"""CLI entry point: monitor headless (poll → store → alertas) sin API HTTP."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace

from common.config import get_settings

from .core.domain.alert import Alert
from .pipeline import MonitorService

logger = logging.getLogger(__name__)


def _log_alert(alert: Alert) -> None:
    logger.warning("ALERTA %s: %s - %s", alert.severity.value, alert.title, alert.description)


async def _run(service: MonitorService, args: argparse.Namespace) -> None:
    service.alert_engine.on("alert", _log_alert)
    await service.start()
    try:
        if args.host is not None or args.port is not None or args.interval_ms is not None:
            # Los flags explícitos pisan la conexión persistida.
            await service.reconfigure_device(host=args.host, port=args.port, interval_ms=args.interval_ms)
        # Corre hasta que lo cancelen (Ctrl+C).
        await asyncio.Event().wait()
    finally:
        await service.stop()


def main() -> None:
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Nursery monitor (headless polling + alerts)")
    p.add_argument("--host", default=None, help="device address (overrides DEVICE_HOST)")
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--interval-ms", type=int, default=None)
    p.add_argument("--db-url", default=None, help="SQLAlchemy URL (overrides MONITOR_DB_URL)")
    args = p.parse_args()

    overrides = {
        "device_host": args.host,
        "device_port": args.port,
        "poll_interval_ms": args.interval_ms,
        "db_url": args.db_url,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    logger.info("Nursery monitor started")
    logger.info(
        "Config: device=%s:%d interval=%dms db=%s",
        settings.device_host, settings.device_port, settings.poll_interval_ms, settings.db_url,
    )

    service = MonitorService.from_settings(settings)
    try:
        asyncio.run(_run(service, args))
    except KeyboardInterrupt:
        logger.info("Interrumpido, saliendo...")


if __name__ == "__main__":
    main()
