"""Pipeline de ingesta por mensaje.

Normalize -> (register device) -> upsert reading -> enforce current.
Nothing raised inside the pipeline escapes ``process``: every message
ends as processed, rejected or failed, and failed messages are not
retried by the application (transport redelivery is the only recovery
path, which the idempotent upsert makes safe).
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Optional, Union

from ..metrics import MESSAGES_TOTAL, PROCESSING_SECONDS
from ..mqtt.validators import normalize_payload
from ..persistence import PersistenceError
from .device_registrar import DeviceRegistrar
from .reading_upserter import ReadingUpserter

logger = logging.getLogger(__name__)


class PipelineOutcome(Enum):
    PROCESSED = "processed"
    REJECTED = "rejected"
    FAILED = "failed"


class TelemetryPipeline:

    def __init__(
        self,
        upserter: ReadingUpserter,
        registrar: Optional[DeviceRegistrar] = None,
    ):
        self._upserter = upserter
        self._registrar = registrar

    def process(self, device_key: str, raw: Union[bytes, str]) -> PipelineOutcome:
        start = time.perf_counter()
        try:
            outcome = self._process(device_key, raw)
        except Exception as e:
            logger.exception("[PIPELINE] Unexpected error plant_id=%s: %s", device_key, e)
            outcome = PipelineOutcome.FAILED
        PROCESSING_SECONDS.observe(time.perf_counter() - start)
        MESSAGES_TOTAL.labels(status=outcome.value).inc()
        return outcome

    def _process(self, device_key: str, raw: Union[bytes, str]) -> PipelineOutcome:
        reading = normalize_payload(device_key, raw)
        if reading is None:
            return PipelineOutcome.REJECTED

        if self._registrar is not None:
            # Un fallo aquí no bloquea la lectura
            self._registrar.ensure_device(device_key)

        try:
            result = self._upserter.upsert(
                device_key,
                reading.timestamp,
                reading.measurements,
                supplied_key=reading.sensor_data_id,
            )
        except PersistenceError as e:
            logger.error(
                "[PIPELINE] Upsert failed plant_id=%s op=%s err=%s",
                device_key,
                e.operation,
                e,
            )
            return PipelineOutcome.FAILED

        logger.debug(
            "[PIPELINE] Upserted sensor doc %s (%s) for plant %s",
            result.record_id,
            result.status.value,
            device_key,
        )
        return PipelineOutcome.PROCESSED
