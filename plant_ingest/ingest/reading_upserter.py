"""Upsert idempotente de lecturas.

The idempotency key is either supplied by the publisher
(``sensor_data_id``) or derived from device key + canonical timestamp.
A redelivered message therefore hits the same record and updates it in
place instead of creating a duplicate.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..core.reading import Measurements
from ..core.timestamps import parse_timestamp, utc_now_iso
from ..metrics import READINGS_UPSERTED
from ..persistence import (
    DEVICE_KEY_FIELD,
    READING_KEY_FIELD,
    LookupStatus,
    PersistenceGateway,
    find_or_create,
)
from .currency import CurrencyEnforcer, EnforcementResult

logger = logging.getLogger(__name__)

_KEY_DISALLOWED = re.compile(r"[^a-zA-Z0-9_-]")


def make_reading_key(device_key: str, timestamp: str) -> str:
    """``sd_<device>_<timestamp>`` with everything outside ``[A-Za-z0-9_-]`` stripped."""
    return _KEY_DISALLOWED.sub("", f"sd_{device_key}_{timestamp}")


@dataclass(frozen=True)
class UpsertResult:
    record_id: str
    sensor_data_id: str
    status: LookupStatus
    enforcement: Optional[EnforcementResult] = None

    @property
    def created(self) -> bool:
        return self.status is LookupStatus.CREATED


class ReadingUpserter:

    def __init__(
        self,
        gateway: PersistenceGateway,
        collection: str,
        enforcer: CurrencyEnforcer,
    ):
        self._gateway = gateway
        self._collection = collection
        self._enforcer = enforcer

    def upsert(
        self,
        device_key: str,
        timestamp: Optional[str],
        measurements: Measurements,
        supplied_key: Optional[str] = None,
    ) -> UpsertResult:
        """Store or correct a reading and make it the device's current one.

        Raises PersistenceError when the lookup or the write fails; the
        enforcement step never raises.
        """
        ts = parse_timestamp(timestamp) or utc_now_iso()
        sensor_data_id = supplied_key or make_reading_key(device_key, ts)

        reading_fields = {
            DEVICE_KEY_FIELD: device_key,
            "timestamp": ts,
            **measurements.to_fields(),
            "is_current": True,
        }

        result = find_or_create(
            self._gateway,
            self._collection,
            sensor_data_id,
            {
                READING_KEY_FIELD: sensor_data_id,
                **reading_fields,
                "created_at": utc_now_iso(),
            },
        )
        record_id = result.record.id

        if result.status is LookupStatus.FOUND:
            # Reentrega o corrección: se sobreescriben los valores
            self._gateway.update(self._collection, record_id, reading_fields)
            logger.debug("[UPSERT] Updated sensor_data_id=%s id=%s", sensor_data_id, record_id)
        else:
            logger.debug("[UPSERT] Created sensor_data_id=%s id=%s", sensor_data_id, record_id)
        READINGS_UPSERTED.labels(outcome="created" if result.created else "updated").inc()

        enforcement = self._enforcer.enforce(device_key, record_id)
        return UpsertResult(
            record_id=record_id,
            sensor_data_id=sensor_data_id,
            status=result.status,
            enforcement=enforcement,
        )
