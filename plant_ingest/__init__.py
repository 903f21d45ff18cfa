"""Plant telemetry ingestion: MQTT -> validation -> idempotent store writes."""

__version__ = "0.3.0"
