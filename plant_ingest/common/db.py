from __future__ import annotations

import logging
from typing import Any, Dict
from urllib.parse import urlsplit

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings


logger = logging.getLogger(__name__)


def _redact_url(url: str) -> str:
    # Nunca loguear credenciales
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@")
    return parts._replace(netloc=netloc).geturl()


def store_connect_args(url: str, timeout: float) -> Dict[str, Any]:
    """Driver arguments that bound connect time and statement time to ``timeout``."""
    backend = make_url(url).get_backend_name()
    seconds = max(1, int(round(timeout)))

    if backend == "sqlite":
        # SQLite: el timeout es el de espera por locks del fichero
        return {"timeout": timeout, "check_same_thread": False}
    if backend == "postgresql":
        return {
            "connect_timeout": seconds,
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    if backend in ("mysql", "mariadb"):
        return {"connect_timeout": seconds, "read_timeout": seconds, "write_timeout": seconds}
    if backend == "mssql":
        # pyodbc: login timeout
        return {"timeout": seconds}

    logger.warning("[STORE] No driver timeouts known for backend=%s", backend)
    return {}


def build_engine(settings: Settings) -> Engine:
    """Create the store engine with bounded connect, statement and checkout timeouts."""
    url = settings.store_url
    timeout = settings.store_timeout_seconds
    connect_args = store_connect_args(url, timeout)

    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args=connect_args, future=True)
    else:
        engine = create_engine(
            url,
            connect_args=connect_args,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=300,
            pool_timeout=timeout,
            future=True,
        )

    logger.info("[STORE] Engine created url=%s timeout=%.1fs", _redact_url(url), timeout)
    return engine


def check_connection(engine: Engine) -> bool:
    """Run ``SELECT 1``; used at boot and by the readiness probe."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.exception("[STORE] Connection test failed")
        return False
