from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv


_DEFAULT_STORE_URL = "sqlite:///./plant_ingest.db"
_MIN_STORE_TIMEOUT = 5.0
_MAX_STORE_TIMEOUT = 30.0


class ConfigError(Exception):
    """Configuración inválida detectada al arrancar."""


@dataclass(frozen=True)
class MqttEndpoint:
    host: str
    port: int
    tls: bool


@dataclass(frozen=True)
class Settings:
    mqtt_url: str
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic: str
    mqtt_client_id: str
    mqtt_qos: int
    mqtt_keepalive: int

    store_url: str
    store_timeout_seconds: float

    devices_collection: str
    readings_collection: str

    upsert_device_on_sighting: bool
    enforce_single_current: bool
    enforce_page_size: int
    enforce_workers: int

    ingest_workers: int
    ingest_queue_size: int
    http_port: int
    log_level: str

    @property
    def mqtt_endpoint(self) -> MqttEndpoint:
        return parse_mqtt_url(self.mqtt_url)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or default


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _env_timeout(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return min(max(parsed, _MIN_STORE_TIMEOUT), _MAX_STORE_TIMEOUT)


def parse_mqtt_url(url: str) -> MqttEndpoint:
    """Parse ``mqtt://host[:port]`` / ``mqtts://host[:port]`` into an endpoint."""
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in ("mqtt", "tcp", "mqtts", "ssl"):
        raise ConfigError(f"Unsupported MQTT URL scheme: {parts.scheme!r}")
    if not parts.hostname:
        raise ConfigError(f"MQTT URL has no host: {url!r}")

    tls = scheme in ("mqtts", "ssl")
    try:
        port = parts.port or (8883 if tls else 1883)
    except ValueError as exc:
        raise ConfigError(f"Invalid MQTT port in {url!r}") from exc
    return MqttEndpoint(host=parts.hostname, port=port, tls=tls)


def _load_env_file() -> None:
    # Variables reales del entorno tienen prioridad sobre el .env
    env_file = os.getenv("PLANT_INGEST_ENV_FILE", ".env")
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)


def get_settings() -> Settings:
    _load_env_file()

    store_url = _env_optional("STORE_URL") or _env_optional("DATABASE_URL") or _DEFAULT_STORE_URL

    settings = Settings(
        mqtt_url=_env_str("MQTT_URL", "mqtt://localhost:1883"),
        mqtt_username=_env_optional("MQTT_USERNAME"),
        mqtt_password=_env_optional("MQTT_PASSWORD"),
        mqtt_topic=_env_str("MQTT_TOPIC", "plants/+/telemetry"),
        mqtt_client_id=_env_str("MQTT_CLIENT_ID", "plant-ingest"),
        mqtt_qos=min(_env_int("MQTT_QOS", 1, minimum=0), 2),
        mqtt_keepalive=_env_int("MQTT_KEEPALIVE", 60),
        store_url=store_url,
        store_timeout_seconds=_env_timeout("STORE_TIMEOUT_SECONDS", 10.0),
        devices_collection=_env_str("COLL_PLANTS", "plants"),
        readings_collection=_env_str("COLL_SENSOR", "plant_sensor_data"),
        upsert_device_on_sighting=_env_bool("UPSERT_PLANT_ON_SEEN", True),
        enforce_single_current=_env_bool("FLUSH_IS_CURRENT", True),
        enforce_page_size=_env_int("ENFORCE_PAGE_SIZE", 100),
        enforce_workers=_env_int("ENFORCE_WORKERS", 8),
        ingest_workers=_env_int("INGEST_WORKERS", 4, minimum=0),
        ingest_queue_size=_env_int("INGEST_QUEUE_SIZE", 1000),
        http_port=_env_int("HTTP_PORT", 8080, minimum=0),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
    )

    # Falla temprano si la URL del broker no es utilizable
    parse_mqtt_url(settings.mqtt_url)
    return settings
