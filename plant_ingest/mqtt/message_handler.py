"""Message handling logic for the MQTT receiver.

Extracted from receiver.py so it can be exercised without a broker.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Union

from ..metrics import MESSAGES_TOTAL
from .receiver_stats import ReceiverStats
from .topics import TopicPattern

logger = logging.getLogger(__name__)

# (device_key, raw_payload) -> accepted
Submit = Callable[[str, bytes], bool]


def handle_message(
    topic: str,
    payload: bytes,
    pattern: TopicPattern,
    stats: ReceiverStats,
    submit: Submit,
) -> bool:
    """Extract the device key from ``topic`` and hand the payload off.

    Malformed topics are logged and dropped; they never stop the
    subscription.
    """
    stats.incr("received")
    stats.last_message_at = time.time()

    device_key = pattern.parse_device_key(topic)
    if device_key is None:
        logger.warning("[MQTT] No plant_id in topic %r (expected %s)", topic, pattern.pattern)
        stats.incr("rejected")
        MESSAGES_TOTAL.labels(status="rejected").inc()
        return False

    if not submit(device_key, payload):
        stats.incr("dropped")
        MESSAGES_TOTAL.labels(status="dropped").inc()
        return False
    return True


def process_and_count(pipeline, stats: ReceiverStats, device_key: str, payload: Union[bytes, str]) -> None:
    """Run the pipeline for one message and record its outcome."""
    outcome = pipeline.process(device_key, payload)
    stats.incr(outcome.value)
    if outcome.value == "processed" and stats.processed % 100 == 0:
        logger.info("[MQTT] %s", stats)
