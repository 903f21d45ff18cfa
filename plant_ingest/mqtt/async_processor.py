"""Async processor: decouples the paho callback from store round-trips.

The paho network loop thread only enqueues ``(device_key, payload)``;
worker threads run the pipeline. Several workers may process messages
of the same device at once: the store is the only shared state and the
current-reading invariant is restored by the next enforcement pass.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4

Handler = Callable[[str, bytes], None]


class AsyncIngestProcessor:
    """Bounded queue + worker threads.

    - paho callback → enqueue() returns immediately
    - worker threads → handler(device_key, payload)
    - a full queue drops the message (returns False)
    """

    def __init__(
        self,
        handler: Handler,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
    ):
        self._handler = handler
        self._queue: "queue.Queue[Tuple[str, bytes]]" = queue.Queue(maxsize=max_queue_size)
        self._num_workers = max(1, num_workers)
        self._stop_event = threading.Event()

        self._enqueued = 0
        self._dropped = 0
        self._handled = 0
        self._errors = 0
        self._abandoned = 0
        self._lock = threading.Lock()

        self._workers: list[threading.Thread] = []

    def start(self) -> None:
        """Start worker threads."""
        if self._workers:
            return
        self._stop_event.clear()
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"ingest-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        logger.info(
            "[ASYNC_PROC] Started workers=%d queue_max=%d",
            self._num_workers, self._queue.maxsize,
        )

    def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        """Stop workers within ``timeout`` seconds.

        With drain=True queued messages are handled until the deadline;
        whatever is still queued after it is abandoned and counted.
        """
        deadline = time.monotonic() + timeout
        if drain and self._workers:
            while self._queue.unfinished_tasks and time.monotonic() < deadline:
                time.sleep(0.02)
        self._stop_event.set()
        for t in self._workers:
            t.join(timeout=max(0.0, deadline - time.monotonic()))
        self._workers.clear()

        abandoned = self._queue.qsize()
        if abandoned:
            with self._lock:
                self._abandoned += abandoned
            logger.warning("[ASYNC_PROC] Stop deadline reached, abandoned %d queued messages", abandoned)
        logger.info("[ASYNC_PROC] Stopped. %s", self.metrics)

    def enqueue(self, device_key: str, payload: bytes) -> bool:
        try:
            self._queue.put_nowait((device_key, payload))
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.warning("[ASYNC_PROC] Queue full, dropped message plant_id=%s", device_key)
            return False
        with self._lock:
            self._enqueued += 1
        return True

    def _worker_loop(self, worker_id: int) -> None:
        while not self._stop_event.is_set():
            try:
                device_key, payload = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue

            try:
                self._handler(device_key, payload)
                with self._lock:
                    self._handled += 1
            except Exception as e:
                with self._lock:
                    self._errors += 1
                logger.error("[ASYNC_PROC] Worker %d error plant_id=%s: %s", worker_id, device_key, e)
            finally:
                self._queue.task_done()

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": self._queue.qsize(),
                "queue_max": self._queue.maxsize,
                "workers": self._num_workers,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "handled": self._handled,
                "errors": self._errors,
                "abandoned": self._abandoned,
            }


def create_async_processor(
    handler: Handler,
    max_queue_size: int = DEFAULT_QUEUE_SIZE,
    num_workers: int = DEFAULT_NUM_WORKERS,
) -> Optional[AsyncIngestProcessor]:
    """Build and start a processor; ``num_workers=0`` means inline handling (None)."""
    if num_workers <= 0:
        logger.info("[ASYNC_PROC] Disabled, messages handled on the paho thread")
        return None
    processor = AsyncIngestProcessor(handler, max_queue_size=max_queue_size, num_workers=num_workers)
    processor.start()
    return processor
