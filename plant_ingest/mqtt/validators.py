"""Validadores de payloads de telemetría.

Decodes a raw MQTT payload and validates it into a ``TelemetryReading``.
Failures never raise: they come back as an invalid ``ValidationResult``
and are logged at WARNING.

Formato esperado:
{
    "timestamp": "2024-05-01T10:00:00Z",   (opcional)
    "temperature": 21.5,
    "light": 830,
    "humidity": 48.2,
    "sensor_data_id": "sd_plant1_2024"       (opcional)
}
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr, ValidationError, field_validator

from ..core.reading import Measurements, TelemetryReading
from ..core.timestamps import parse_timestamp, utc_now_iso

logger = logging.getLogger(__name__)

Number = Union[StrictInt, StrictFloat]


class TelemetryPayload(BaseModel):
    """Schema de validación; campos desconocidos se ignoran."""

    model_config = ConfigDict(extra="ignore")

    temperature: Number
    light: Number
    humidity: Number
    timestamp: Optional[Any] = None
    sensor_data_id: Optional[StrictStr] = None

    @field_validator("temperature", "light", "humidity")
    @classmethod
    def validate_finite(cls, v):
        if not math.isfinite(v):
            raise ValueError("value must be finite")
        return float(v)

    @field_validator("sensor_data_id")
    @classmethod
    def empty_key_is_absent(cls, v):
        # Solo la cadena vacía cuenta como ausente; el resto pasa tal cual
        return v or None


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    reading: Optional[TelemetryReading] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def decode_payload(raw: Union[bytes, str]) -> Optional[dict]:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "payload"
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)


def validate_telemetry(device_key: str, data: dict) -> ValidationResult:
    """Validate an already decoded payload for ``device_key``."""
    try:
        payload = TelemetryPayload.model_validate(data)
    except ValidationError as e:
        return ValidationResult(valid=False, error=_describe(e))

    warnings: List[str] = []
    timestamp = parse_timestamp(payload.timestamp)
    defaulted = timestamp is None
    if defaulted:
        timestamp = utc_now_iso()
        if payload.timestamp is not None:
            warnings.append(f"Unparseable timestamp {payload.timestamp!r}, using ingestion time")

    reading = TelemetryReading(
        device_key=device_key,
        timestamp=timestamp,
        measurements=Measurements(
            temperature=payload.temperature,
            light=payload.light,
            humidity=payload.humidity,
        ),
        sensor_data_id=payload.sensor_data_id,
        timestamp_defaulted=defaulted,
    )
    return ValidationResult(valid=True, reading=reading, warnings=warnings)


def normalize_payload(device_key: str, raw: Union[bytes, str]) -> Optional[TelemetryReading]:
    """Decode + validate; returns None (and logs) for anything unusable."""
    data = decode_payload(raw)
    if data is None:
        logger.warning("[VALIDATOR] Invalid JSON payload plant_id=%s", device_key)
        return None

    result = validate_telemetry(device_key, data)
    if not result.valid:
        logger.warning(
            "[VALIDATOR] Missing/invalid fields plant_id=%s: %s",
            device_key,
            result.error,
        )
        return None

    for warn in result.warnings:
        logger.warning("[VALIDATOR] plant_id=%s %s", device_key, warn)
    return result.reading
