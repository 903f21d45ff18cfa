"""CLI entry point for the ingestion service."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading

from sqlalchemy.exc import SQLAlchemyError

from .common.config import ConfigError, get_settings
from .service import IngestService, StartupError, build_gateway

logger = logging.getLogger(__name__)


def _run_without_http(service: IngestService) -> None:
    stop = threading.Event()

    def _on_signal(signum, frame):
        logger.info("Signal %s received, shutting down", signum)
        stop.set()

    service.start()
    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)
    try:
        stop.wait()
    finally:
        service.stop()


def _run_with_http(service: IngestService, port: int) -> None:
    import uvicorn

    from .api import create_app

    # Arranca antes de uvicorn: un StartupError debe salir con código 1
    service.start()
    try:
        # uvicorn maneja SIGINT/SIGTERM
        uvicorn.run(
            create_app(service, manage_lifecycle=False),
            host="0.0.0.0",
            port=port,
            log_level="warning",
        )
    finally:
        service.stop()


def main(argv=None) -> None:
    p = argparse.ArgumentParser(description="MQTT plant telemetry ingestion")
    p.add_argument("--dry-run", action="store_true", help="use an in-memory store instead of STORE_URL")
    p.add_argument("--create-schema", action="store_true", help="create the SQL tables and exit")
    p.add_argument("--http-port", type=int, default=None, help="health/metrics port (0 disables, default HTTP_PORT)")
    args = p.parse_args(argv)

    try:
        settings = get_settings()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    gateway = build_gateway(settings, dry_run=args.dry_run)

    if args.create_schema:
        if args.dry_run:
            logger.info("Nothing to create for the in-memory store")
            return
        try:
            gateway.create_schema()
        except SQLAlchemyError as e:
            logger.error("Schema creation failed: %s", e)
            sys.exit(1)
        return

    service = IngestService(settings, gateway)
    port = settings.http_port if args.http_port is None else args.http_port

    try:
        if port > 0:
            _run_with_http(service, port)
        else:
            _run_without_http(service)
    except StartupError as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
