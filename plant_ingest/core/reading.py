"""Modelo de dominio para lecturas de telemetría."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


MEASUREMENT_FIELDS = ("temperature", "light", "humidity")


@dataclass(frozen=True)
class Measurements:
    temperature: float
    light: float
    humidity: float

    def to_fields(self) -> dict:
        return {
            "temperature": self.temperature,
            "light": self.light,
            "humidity": self.humidity,
        }


@dataclass(frozen=True)
class TelemetryReading:
    """Lectura normalizada - contrato entre el normalizador y el upserter.

    ``timestamp`` is always canonical; ``timestamp_defaulted`` tells whether
    it came from the payload or was filled in with the ingestion time.
    """
    device_key: str
    timestamp: str
    measurements: Measurements
    sensor_data_id: Optional[str] = None
    timestamp_defaulted: bool = False
