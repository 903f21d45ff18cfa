"""Topic pattern ``<namespace>/+/<channel>`` and device key extraction."""

from __future__ import annotations

from typing import Optional, Tuple


class TopicPattern:
    """Subscription pattern with exactly one ``+`` segment holding the device key."""

    def __init__(self, pattern: str = "plants/+/telemetry"):
        segments = tuple(pattern.split("/"))
        wildcard = [i for i, seg in enumerate(segments) if seg == "+"]
        if len(wildcard) != 1 or "#" in segments:
            raise ValueError(f"Topic pattern needs exactly one '+' and no '#': {pattern!r}")
        self.pattern = pattern
        self._segments: Tuple[str, ...] = segments
        self._key_index = wildcard[0]

    def parse_device_key(self, topic: str) -> Optional[str]:
        """``plants/greenhouse-12/telemetry`` -> ``greenhouse-12``; None when malformed."""
        parts = topic.split("/")
        if len(parts) != len(self._segments):
            return None
        for i, (part, expected) in enumerate(zip(parts, self._segments)):
            if i != self._key_index and part != expected:
                return None
        device_key = parts[self._key_index]
        return device_key or None

    def __repr__(self) -> str:
        return f"TopicPattern({self.pattern!r})"
