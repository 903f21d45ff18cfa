"""Registro mínimo de dispositivos vistos por primera vez."""

from __future__ import annotations

import logging
from typing import Optional

from ..core.timestamps import utc_now_iso
from ..persistence import (
    DEVICE_KEY_FIELD,
    FindOrCreateResult,
    LookupStatus,
    PersistenceError,
    PersistenceGateway,
    find_or_create,
)

logger = logging.getLogger(__name__)


class DeviceRegistrar:
    """Ensures a device record exists for every sighted device key.

    Unseen key: create ``{plant_id, name=plant_id, created_at, updated_at}``.
    Known key: touch ``updated_at`` only.
    """

    def __init__(self, gateway: PersistenceGateway, collection: str):
        self._gateway = gateway
        self._collection = collection

    def ensure_device(self, device_key: str) -> Optional[FindOrCreateResult]:
        """Returns None when the store failed; the caller keeps ingesting."""
        now = utc_now_iso()
        try:
            result = find_or_create(
                self._gateway,
                self._collection,
                device_key,
                {
                    DEVICE_KEY_FIELD: device_key,
                    "name": device_key,
                    "created_at": now,
                    "updated_at": now,
                },
            )
            if result.status is LookupStatus.FOUND:
                self._gateway.update(self._collection, result.record.id, {"updated_at": now})
            else:
                logger.info("[REGISTRAR] Created device plant_id=%s", device_key)
            return result
        except PersistenceError as e:
            logger.error(
                "[REGISTRAR] ensure_device failed plant_id=%s op=%s err=%s",
                device_key,
                e.operation,
                e,
            )
            return None
