"""Statistics for the MQTT receiver."""

from __future__ import annotations

import threading


class ReceiverStats:
    """Contadores del receptor; se actualizan desde varios threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self.received = 0
        self.processed = 0
        self.rejected = 0
        self.failed = 0
        self.dropped = 0
        self.last_message_at: float = 0

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} processed={self.processed} "
            f"rejected={self.rejected} failed={self.failed} dropped={self.dropped}"
        )

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "received": self.received,
                "processed": self.processed,
                "rejected": self.rejected,
                "failed": self.failed,
                "dropped": self.dropped,
                "last_message_at": self.last_message_at,
            }
