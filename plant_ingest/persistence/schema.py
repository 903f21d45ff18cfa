"""Table layout for the SQL store.

Mirrors the provisioning script of the document store: unique device
key, unique reading idempotency key, and a ``(plant_id, is_current)``
index for the enforcement lookup.
"""

from __future__ import annotations

from typing import Dict, Tuple

from sqlalchemy import Boolean, Column, Float, Index, MetaData, String, Table


DEVICE_KEY_FIELD = "plant_id"
READING_KEY_FIELD = "sensor_data_id"


def natural_keys(devices_collection: str, readings_collection: str) -> Dict[str, str]:
    return {
        devices_collection: DEVICE_KEY_FIELD,
        readings_collection: READING_KEY_FIELD,
    }


def build_tables(
    metadata: MetaData,
    devices_collection: str,
    readings_collection: str,
) -> Tuple[Table, Table]:
    devices = Table(
        devices_collection,
        metadata,
        Column("id", String(32), primary_key=True),
        Column(DEVICE_KEY_FIELD, String(128), nullable=False),
        Column("name", String(100), nullable=False),
        Column("description", String(500)),
        Column("image_url", String(512)),
        Column("ideal_temp_min", Float),
        Column("ideal_temp_max", Float),
        Column("ideal_light_min", Float),
        Column("ideal_light_max", Float),
        Column("ideal_humidity_min", Float),
        Column("ideal_humidity_max", Float),
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32), nullable=False),
        Index(f"uniq_{devices_collection}_plant_id", DEVICE_KEY_FIELD, unique=True),
    )

    readings = Table(
        readings_collection,
        metadata,
        Column("id", String(32), primary_key=True),
        Column(READING_KEY_FIELD, String(128), nullable=False),
        Column(DEVICE_KEY_FIELD, String(128), nullable=False),
        Column("timestamp", String(32), nullable=False),
        Column("temperature", Float, nullable=False),
        Column("light", Float, nullable=False),
        Column("humidity", Float, nullable=False),
        Column("is_current", Boolean, nullable=False, default=False),
        Column("created_at", String(32), nullable=False),
        Index(f"uniq_{readings_collection}_sensor_data_id", READING_KEY_FIELD, unique=True),
        Index(f"by_{readings_collection}_plant_ts", DEVICE_KEY_FIELD, "timestamp"),
        Index(f"current_by_{readings_collection}_plant", DEVICE_KEY_FIELD, "is_current"),
    )
    return devices, readings
