"""MQTT transport para ingesta de telemetría.

Estructura modular:
- topics.py: patrón de topic y extracción del device key
- validators.py: decodificación y validación de payloads
- message_handler.py: topic -> (device_key, payload) -> submit
- async_processor.py: cola acotada + workers
- receiver.py: cliente paho-mqtt
"""

from .async_processor import AsyncIngestProcessor, create_async_processor
from .message_handler import handle_message, process_and_count
from .receiver import TelemetryReceiver
from .receiver_stats import ReceiverStats
from .topics import TopicPattern
from .validators import TelemetryPayload, ValidationResult, normalize_payload, validate_telemetry

__all__ = [
    "AsyncIngestProcessor",
    "create_async_processor",
    "handle_message",
    "process_and_count",
    "TelemetryReceiver",
    "ReceiverStats",
    "TopicPattern",
    "TelemetryPayload",
    "ValidationResult",
    "normalize_payload",
    "validate_telemetry",
]
