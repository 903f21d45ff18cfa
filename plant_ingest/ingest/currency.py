"""Exclusividad de ``is_current`` por dispositivo.

After a reading is written with ``is_current=true`` the enforcer demotes
every other current reading of the same device. Demotions are fanned
out to a bounded thread pool; each failure is logged and collected, and
never aborts the batch or the enclosing upsert.

Listing is bounded by ``page_size``. A device with more stale current
readings than one page converges over several enforcement passes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import List, Optional

from ..metrics import DEMOTIONS_TOTAL
from ..persistence import DEVICE_KEY_FIELD, PersistenceError, PersistenceGateway

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_WORKERS = 8


@dataclass
class EnforcementResult:
    device_key: str
    keep_id: str
    page_size: int = DEFAULT_PAGE_SIZE
    enabled: bool = True
    listed: int = 0
    demoted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    list_error: Optional[str] = None

    @property
    def page_exhausted(self) -> bool:
        """True when the listing hit the page size (another pass may be needed)."""
        return self.listed > 0 and self.listed >= self.page_size


class CurrencyEnforcer:

    def __init__(
        self,
        gateway: PersistenceGateway,
        collection: str,
        enabled: bool = True,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_workers: int = DEFAULT_MAX_WORKERS,
        timeout_seconds: Optional[float] = None,
    ):
        self._gateway = gateway
        self._collection = collection
        self._enabled = enabled
        self._page_size = max(1, page_size)
        self._max_workers = max(1, max_workers)
        self._timeout = timeout_seconds

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enforce(self, device_key: str, keep_id: str) -> EnforcementResult:
        result = EnforcementResult(device_key=device_key, keep_id=keep_id, page_size=self._page_size)
        if not self._enabled:
            result.enabled = False
            return result

        try:
            current = self._gateway.list_by_filter(
                self._collection,
                {DEVICE_KEY_FIELD: device_key, "is_current": True},
                self._page_size,
            )
        except PersistenceError as e:
            logger.error("[CURRENT] list failed plant_id=%s err=%s", device_key, e)
            result.list_error = str(e)
            return result

        result.listed = len(current)
        stale = [record.id for record in current if record.id != keep_id]
        if not stale:
            return result

        self._demote_all(stale, result)

        if result.failed:
            logger.warning(
                "[CURRENT] plant_id=%s demoted=%d failed=%d (next pass will retry)",
                device_key,
                len(result.demoted),
                len(result.failed),
            )
        else:
            logger.debug("[CURRENT] plant_id=%s demoted=%d", device_key, len(result.demoted))
        if result.page_exhausted:
            logger.info(
                "[CURRENT] plant_id=%s listing hit page_size=%d, convergence needs another pass",
                device_key,
                self._page_size,
            )
        return result

    def _demote_all(self, record_ids: List[str], result: EnforcementResult) -> None:
        pool = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(record_ids)),
            thread_name_prefix="demote",
        )
        futures = {pool.submit(self._demote, record_id): record_id for record_id in record_ids}
        try:
            for fut in as_completed(futures, timeout=self._timeout):
                record_id = futures[fut]
                try:
                    fut.result()
                    result.demoted.append(record_id)
                    DEMOTIONS_TOTAL.labels(status="ok").inc()
                except Exception as exc:
                    result.failed.append(record_id)
                    DEMOTIONS_TOTAL.labels(status="failed").inc()
                    logger.error(
                        "[CURRENT] demote failed plant_id=%s id=%s err=%s",
                        result.device_key,
                        record_id,
                        exc,
                    )
        except FuturesTimeout:
            pending = [rid for f, rid in futures.items() if not f.done()]
            result.failed.extend(pending)
            DEMOTIONS_TOTAL.labels(status="failed").inc(len(pending))
            logger.error(
                "[CURRENT] demote timed out plant_id=%s pending=%d",
                result.device_key,
                len(pending),
            )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _demote(self, record_id: str) -> None:
        self._gateway.update(self._collection, record_id, {"is_current": False})
