"""Tests del upsert idempotente de lecturas."""

import re

import pytest

from plant_ingest.core.reading import Measurements
from plant_ingest.ingest import make_reading_key
from plant_ingest.persistence import LookupStatus, PersistenceError

from conftest import READINGS, current_readings


def m(temperature=21.0, light=800.0, humidity=40.0) -> Measurements:
    return Measurements(temperature=temperature, light=light, humidity=humidity)


# =============================================================================
# CLAVE DE IDEMPOTENCIA
# =============================================================================

class TestReadingKey:

    def test_key_contains_only_allowed_characters(self):
        key = make_reading_key("plant#1", "2024-01-01T00:00:00Z")

        assert re.fullmatch(r"[A-Za-z0-9_-]+", key)
        assert key == "sd_plant1_2024-01-01T000000Z"

    def test_key_is_deterministic(self):
        ts = "2024-01-01T00:00:00.000Z"
        assert make_reading_key("p1", ts) == make_reading_key("p1", ts)
        assert make_reading_key("p1", ts) != make_reading_key("p2", ts)


# =============================================================================
# IDEMPOTENCIA
# =============================================================================

class TestIdempotency:

    def test_same_input_twice_stores_one_reading(self, upserter, gateway):
        ts = "2024-01-01T00:00:00Z"
        first = upserter.upsert("p1", ts, m(temperature=20.0))
        second = upserter.upsert("p1", ts, m(temperature=22.5))

        assert first.status is LookupStatus.CREATED
        assert second.status is LookupStatus.FOUND
        assert first.record_id == second.record_id

        readings = gateway.all(READINGS)
        assert len(readings) == 1
        assert readings[0].get("temperature") == 22.5
        assert readings[0].get("is_current") is True
        assert readings[0].get("sensor_data_id") == "sd_p1_2024-01-01T000000000Z"

    def test_equivalent_timestamps_share_a_key(self, upserter, gateway):
        upserter.upsert("p1", "2024-01-01T00:00:00Z", m())
        upserter.upsert("p1", "2024-01-01T01:00:00+01:00", m())

        assert len(gateway.all(READINGS)) == 1

    def test_supplied_key_wins_over_derived(self, upserter, gateway):
        upserter.upsert("plant1", "2024-01-01T00:00:00Z", m(humidity=30.0), supplied_key="sd_plant1_2024")
        upserter.upsert("plant1", "2024-02-01T00:00:00Z", m(humidity=55.0), supplied_key="sd_plant1_2024")

        readings = gateway.all(READINGS)
        assert len(readings) == 1
        assert readings[0].get("sensor_data_id") == "sd_plant1_2024"
        assert readings[0].get("humidity") == 55.0
        assert readings[0].get("timestamp") == "2024-02-01T00:00:00.000Z"

    def test_redelivery_keeps_created_at(self, upserter, gateway):
        upserter.upsert("p1", "2024-01-01T00:00:00Z", m())
        created_at = gateway.all(READINGS)[0].get("created_at")

        upserter.upsert("p1", "2024-01-01T00:00:00Z", m(light=1.0))

        assert gateway.all(READINGS)[0].get("created_at") == created_at

    def test_missing_timestamp_uses_ingestion_time(self, upserter, gateway):
        result = upserter.upsert("p1", None, m())

        stored = gateway.all(READINGS)[0]
        assert stored.get("timestamp").endswith("Z")
        assert result.sensor_data_id == make_reading_key("p1", stored.get("timestamp"))


# =============================================================================
# EXCLUSIVIDAD DE is_current
# =============================================================================

class TestCurrentConvergence:

    def test_sequential_upserts_leave_exactly_one_current(self, upserter, gateway):
        n = 6
        results = [
            upserter.upsert("p1", f"2024-01-01T00:0{i}:00Z", m(temperature=float(i)))
            for i in range(n)
        ]

        readings = gateway.all(READINGS)
        assert len(readings) == n
        current = current_readings(gateway, "p1")
        assert [r.id for r in current] == [results[-1].record_id]
        assert sum(1 for r in readings if r.get("is_current") is False) == n - 1

    def test_redelivery_of_old_reading_becomes_current_again(self, upserter, gateway):
        old = upserter.upsert("p1", "2024-01-01T00:00:00Z", m())
        upserter.upsert("p1", "2024-01-01T00:05:00Z", m())

        again = upserter.upsert("p1", "2024-01-01T00:00:00Z", m())

        assert again.record_id == old.record_id
        assert [r.id for r in current_readings(gateway, "p1")] == [old.record_id]

    def test_devices_are_independent(self, upserter, gateway):
        a = upserter.upsert("a", "2024-01-01T00:00:00Z", m())
        b = upserter.upsert("b", "2024-01-01T00:00:00Z", m())

        assert [r.id for r in current_readings(gateway, "a")] == [a.record_id]
        assert [r.id for r in current_readings(gateway, "b")] == [b.record_id]


# =============================================================================
# FALLOS DE PERSISTENCIA
# =============================================================================

class TestPersistenceFailures:

    def test_create_failure_propagates(self, upserter, gateway):
        gateway.fail_next("create")

        with pytest.raises(PersistenceError) as exc:
            upserter.upsert("p1", "2024-01-01T00:00:00Z", m())

        assert exc.value.operation == "create"
        assert gateway.all(READINGS) == []

    def test_enforcement_failure_does_not_fail_upsert(self, upserter, gateway):
        upserter.upsert("p1", "2024-01-01T00:00:00Z", m())
        gateway.fail_next("list")

        result = upserter.upsert("p1", "2024-01-01T00:01:00Z", m())

        assert result.created
        assert result.enforcement.list_error is not None
        # Violación transitoria: dos lecturas current hasta la próxima pasada
        assert len(current_readings(gateway, "p1")) == 2

        upserter.upsert("p1", "2024-01-01T00:02:00Z", m())
        assert len(current_readings(gateway, "p1")) == 1


# =============================================================================
# CARRERA DE CREATE
# =============================================================================

def stale_first_lookup(gateway, monkeypatch):
    """The next lookup misses, as if another writer created the key just after it."""
    real_find = gateway.find_by_natural_key
    calls = []

    def find(collection, key):
        calls.append(key)
        if len(calls) == 1:
            return None
        return real_find(collection, key)

    monkeypatch.setattr(gateway, "find_by_natural_key", find)
    return calls


class TestConcurrentCreate:

    def test_lost_create_race_updates_existing_reading(self, upserter, gateway, monkeypatch):
        ts = "2024-01-01T00:00:00Z"
        winner = upserter.upsert("p1", ts, m(temperature=20.0))
        calls = stale_first_lookup(gateway, monkeypatch)

        result = upserter.upsert("p1", ts, m(temperature=25.0))

        assert len(calls) == 2
        assert result.status is LookupStatus.FOUND
        assert result.record_id == winner.record_id
        readings = gateway.all(READINGS)
        assert len(readings) == 1
        assert readings[0].get("temperature") == 25.0
        assert [r.id for r in current_readings(gateway, "p1")] == [winner.record_id]