"""Wiring del servicio de ingesta.

Every collaborator (store gateway, MQTT client) is an explicit handle
built once here and passed down, so tests can swap in fakes.
"""

from __future__ import annotations

import functools
import logging
from typing import Optional

from .common.config import Settings
from .common.db import build_engine
from .ingest import CurrencyEnforcer, DeviceRegistrar, ReadingUpserter, TelemetryPipeline
from .mqtt import (
    AsyncIngestProcessor,
    ReceiverStats,
    TelemetryReceiver,
    create_async_processor,
    process_and_count,
)
from .persistence import InMemoryGateway, PersistenceGateway, SqlGateway, natural_keys

logger = logging.getLogger(__name__)


class StartupError(Exception):
    """Store o broker inalcanzable al arrancar; termina el proceso."""


def build_gateway(settings: Settings, dry_run: bool = False) -> PersistenceGateway:
    if dry_run:
        logger.info("[STORE] Dry run: using in-memory store")
        return InMemoryGateway(natural_keys(settings.devices_collection, settings.readings_collection))
    return SqlGateway(
        build_engine(settings),
        devices_collection=settings.devices_collection,
        readings_collection=settings.readings_collection,
    )


def build_pipeline(settings: Settings, gateway: PersistenceGateway) -> TelemetryPipeline:
    enforcer = CurrencyEnforcer(
        gateway,
        settings.readings_collection,
        enabled=settings.enforce_single_current,
        page_size=settings.enforce_page_size,
        max_workers=settings.enforce_workers,
        timeout_seconds=settings.store_timeout_seconds * 2,
    )
    upserter = ReadingUpserter(gateway, settings.readings_collection, enforcer)
    registrar = (
        DeviceRegistrar(gateway, settings.devices_collection)
        if settings.upsert_device_on_sighting
        else None
    )
    return TelemetryPipeline(upserter, registrar=registrar)


class IngestService:

    def __init__(
        self,
        settings: Settings,
        gateway: PersistenceGateway,
        receiver: Optional[TelemetryReceiver] = None,
    ):
        self.settings = settings
        self.gateway = gateway
        self.stats = ReceiverStats()
        self.pipeline = build_pipeline(settings, gateway)
        self.processor: Optional[AsyncIngestProcessor] = None
        self.receiver = receiver or TelemetryReceiver(
            settings.mqtt_endpoint,
            submit=self._submit,
            stats=self.stats,
            topic=settings.mqtt_topic,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            client_id=settings.mqtt_client_id,
            qos=settings.mqtt_qos,
            keepalive=settings.mqtt_keepalive,
        )
        self._handle = functools.partial(process_and_count, self.pipeline, self.stats)

    def _submit(self, device_key: str, payload: bytes) -> bool:
        if self.processor is None:
            self._handle(device_key, payload)
            return True
        return self.processor.enqueue(device_key, payload)

    def start(self) -> None:
        if not self.gateway.ping():
            raise StartupError("store is not reachable")
        if isinstance(self.gateway, SqlGateway):
            self.gateway.create_schema()

        self.processor = create_async_processor(
            self._handle,
            max_queue_size=self.settings.ingest_queue_size,
            num_workers=self.settings.ingest_workers,
        )

        try:
            connected = self.receiver.start(timeout=self.settings.store_timeout_seconds)
        except OSError as e:
            self._stop_processor()
            raise StartupError(f"MQTT broker unreachable: {e}") from e
        if not connected:
            self.receiver.stop()
            self._stop_processor()
            raise StartupError("MQTT broker connection timed out")

        logger.info(
            "[SERVICE] Ingesting %s (register_devices=%s enforce_current=%s workers=%d)",
            self.settings.mqtt_topic,
            self.settings.upsert_device_on_sighting,
            self.settings.enforce_single_current,
            self.settings.ingest_workers,
        )

    def stop(self) -> None:
        self.receiver.stop()
        self._stop_processor()

    def _stop_processor(self) -> None:
        if self.processor is not None:
            # Se deja terminar lo que está en cola, sin checkpointing
            self.processor.stop(drain=True, timeout=self.settings.store_timeout_seconds)
            self.processor = None

    def ready(self) -> bool:
        return self.receiver.is_connected and self.gateway.ping()

    def health_check(self) -> dict:
        return {
            "receiver": self.receiver.health_check(),
            "processor": self.processor.metrics if self.processor is not None else None,
        }
