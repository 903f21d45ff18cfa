from __future__ import annotations

import pytest

from plant_ingest.common.config import Settings
from plant_ingest.ingest import CurrencyEnforcer, DeviceRegistrar, ReadingUpserter, TelemetryPipeline
from plant_ingest.persistence import InMemoryGateway, natural_keys

DEVICES = "plants"
READINGS = "plant_sensor_data"


def make_settings(**overrides) -> Settings:
    values = dict(
        mqtt_url="mqtt://localhost:1883",
        mqtt_username=None,
        mqtt_password=None,
        mqtt_topic="plants/+/telemetry",
        mqtt_client_id="plant-ingest-test",
        mqtt_qos=1,
        mqtt_keepalive=60,
        store_url="sqlite://",
        store_timeout_seconds=5.0,
        devices_collection=DEVICES,
        readings_collection=READINGS,
        upsert_device_on_sighting=True,
        enforce_single_current=True,
        enforce_page_size=100,
        enforce_workers=4,
        ingest_workers=0,
        ingest_queue_size=10,
        http_port=0,
        log_level="DEBUG",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway(natural_keys(DEVICES, READINGS))


@pytest.fixture
def enforcer(gateway) -> CurrencyEnforcer:
    return CurrencyEnforcer(gateway, READINGS, enabled=True, page_size=100, max_workers=4)


@pytest.fixture
def upserter(gateway, enforcer) -> ReadingUpserter:
    return ReadingUpserter(gateway, READINGS, enforcer)


@pytest.fixture
def registrar(gateway) -> DeviceRegistrar:
    return DeviceRegistrar(gateway, DEVICES)


@pytest.fixture
def pipeline(upserter, registrar) -> TelemetryPipeline:
    return TelemetryPipeline(upserter, registrar=registrar)


def current_readings(gateway: InMemoryGateway, device_key: str) -> list:
    return [
        r for r in gateway.all(READINGS)
        if r.get("plant_id") == device_key and r.get("is_current") is True
    ]
