"""Tests del normalizador de payloads."""

import logging

import orjson
import pytest

from plant_ingest.core.timestamps import parse_timestamp, to_canonical
from plant_ingest.mqtt.validators import decode_payload, normalize_payload, validate_telemetry


@pytest.fixture
def valid_payload() -> dict:
    return {
        "timestamp": "2024-05-01T10:00:00Z",
        "temperature": 21.5,
        "light": 830,
        "humidity": 48.2,
    }


# =============================================================================
# PAYLOADS VÁLIDOS
# =============================================================================

class TestValidPayload:

    def test_fields_are_extracted(self, valid_payload):
        reading = normalize_payload("plant1", orjson.dumps(valid_payload))

        assert reading is not None
        assert reading.device_key == "plant1"
        assert reading.timestamp == "2024-05-01T10:00:00.000Z"
        assert reading.measurements.temperature == 21.5
        assert reading.measurements.light == 830.0
        assert reading.measurements.humidity == 48.2
        assert reading.sensor_data_id is None
        assert reading.timestamp_defaulted is False

    def test_supplied_key_passes_through_unchanged(self, valid_payload):
        valid_payload["sensor_data_id"] = "sd_plant1_2024#raw"
        reading = normalize_payload("plant1", orjson.dumps(valid_payload))

        assert reading.sensor_data_id == "sd_plant1_2024#raw"

    def test_empty_supplied_key_is_ignored(self, valid_payload):
        valid_payload["sensor_data_id"] = ""
        reading = normalize_payload("plant1", orjson.dumps(valid_payload))

        assert reading.sensor_data_id is None

    def test_whitespace_supplied_key_passes_through(self, valid_payload):
        valid_payload["sensor_data_id"] = "  "
        reading = normalize_payload("plant1", orjson.dumps(valid_payload))

        assert reading.sensor_data_id == "  "

    def test_missing_timestamp_defaults_to_ingestion_time(self, valid_payload):
        del valid_payload["timestamp"]
        reading = normalize_payload("plant1", orjson.dumps(valid_payload))

        assert reading.timestamp_defaulted is True
        assert parse_timestamp(reading.timestamp) == reading.timestamp

    def test_unparseable_timestamp_defaults_with_warning(self, valid_payload):
        valid_payload["timestamp"] = "yesterday-ish"
        result = validate_telemetry("plant1", valid_payload)

        assert result.valid is True
        assert result.reading.timestamp_defaulted is True
        assert "timestamp" in result.warnings[0].lower()

    def test_unknown_fields_are_ignored(self, valid_payload):
        valid_payload["battery"] = 3.7
        assert normalize_payload("plant1", orjson.dumps(valid_payload)) is not None

    def test_accepts_str_payload(self, valid_payload):
        assert normalize_payload("plant1", orjson.dumps(valid_payload).decode()) is not None


# =============================================================================
# PAYLOAD MALFORMADO
# =============================================================================

class TestMalformedPayload:

    def test_missing_humidity(self, valid_payload, caplog):
        del valid_payload["humidity"]
        with caplog.at_level(logging.WARNING):
            reading = normalize_payload("plant1", orjson.dumps(valid_payload))

        assert reading is None
        assert "humidity" in caplog.text

    def test_undecodable_bytes(self, caplog):
        with caplog.at_level(logging.WARNING):
            reading = normalize_payload("plant1", b"\xff\xfe{not json")

        assert reading is None
        assert "Invalid JSON" in caplog.text

    def test_json_array_is_not_a_record(self):
        assert decode_payload(b"[1, 2, 3]") is None

    @pytest.mark.parametrize("bad", ["21.5", None, True, [21.5], {"v": 1}])
    def test_non_numeric_temperature(self, valid_payload, bad):
        valid_payload["temperature"] = bad
        result = validate_telemetry("plant1", valid_payload)

        assert result.valid is False
        assert "temperature" in result.error

    def test_non_finite_value(self, valid_payload):
        valid_payload["light"] = float("inf")
        result = validate_telemetry("plant1", valid_payload)

        assert result.valid is False

    def test_non_string_supplied_key(self, valid_payload):
        valid_payload["sensor_data_id"] = 12345
        result = validate_telemetry("plant1", valid_payload)

        assert result.valid is False
        assert "sensor_data_id" in result.error


# =============================================================================
# TIMESTAMPS
# =============================================================================

class TestTimestamps:

    def test_offset_is_converted_to_utc(self):
        assert parse_timestamp("2024-01-01T02:30:00+02:00") == "2024-01-01T00:30:00.000Z"

    def test_naive_is_treated_as_utc(self):
        assert parse_timestamp("2024-01-01T00:00:00") == "2024-01-01T00:00:00.000Z"

    def test_milliseconds_are_kept(self):
        assert parse_timestamp("2024-01-01T00:00:00.123456Z") == "2024-01-01T00:00:00.123Z"

    @pytest.mark.parametrize("value,expected", [
        ("2024-01-01T00:00:00.12Z", "2024-01-01T00:00:00.120Z"),
        ("2024-01-01T00:00:00.1234Z", "2024-01-01T00:00:00.123Z"),
        ("2024-01-01T10:00:00+0100", "2024-01-01T09:00:00.000Z"),
        ("2024-01-01T10:00:00.5-0230", "2024-01-01T12:30:00.500Z"),
    ])
    def test_short_fractions_and_compact_offsets(self, value, expected):
        assert parse_timestamp(value) == expected

    def test_redelivery_with_short_fraction_keeps_timestamp(self, valid_payload):
        valid_payload["timestamp"] = "2024-05-01T10:00:00.12Z"
        first = normalize_payload("plant1", orjson.dumps(valid_payload))
        second = normalize_payload("plant1", orjson.dumps(valid_payload))

        assert first.timestamp_defaulted is False
        assert first.timestamp == second.timestamp == "2024-05-01T10:00:00.120Z"

    @pytest.mark.parametrize("value", ["", "not a date", 1704067200, None])
    def test_invalid_values(self, value):
        assert parse_timestamp(value) is None

    def test_canonical_is_stable(self):
        canonical = parse_timestamp("2024-01-01T00:00:00Z")
        assert parse_timestamp(canonical) == canonical

    def test_to_canonical_format(self):
        from datetime import datetime, timezone
        dt = datetime(2024, 3, 4, 5, 6, 7, 8000, tzinfo=timezone.utc)
        assert to_canonical(dt) == "2024-03-04T05:06:07.008Z"
