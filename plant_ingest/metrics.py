"""Prometheus metrics for the ingestion pipeline."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

MESSAGES_TOTAL = Counter(
    "plant_ingest_messages_total",
    "MQTT messages handled by the pipeline",
    ["status"],  # processed, rejected, failed, dropped
)

READINGS_UPSERTED = Counter(
    "plant_ingest_readings_upserted_total",
    "Readings written to the store",
    ["outcome"],  # created, updated
)

DEMOTIONS_TOTAL = Counter(
    "plant_ingest_demotions_total",
    "is_current demotion updates issued by the enforcer",
    ["status"],  # ok, failed
)

PROCESSING_SECONDS = Histogram(
    "plant_ingest_processing_seconds",
    "End-to-end pipeline latency per message",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

RECEIVER_CONNECTED = Gauge(
    "plant_ingest_receiver_connected",
    "MQTT receiver connection status",
)
