"""Tests del store en memoria."""

import pytest

from plant_ingest.persistence import (
    DuplicateKey,
    LookupStatus,
    PersistenceError,
    RecordNotFound,
    find_or_create,
)

from conftest import DEVICES, READINGS


class TestInMemoryGateway:

    def test_find_missing_returns_none(self, gateway):
        assert gateway.find_by_natural_key(DEVICES, "nope") is None

    def test_duplicate_natural_key_is_rejected(self, gateway):
        gateway.create(DEVICES, {"plant_id": "p1", "name": "p1"})

        with pytest.raises(DuplicateKey) as exc:
            gateway.create(DEVICES, {"plant_id": "p1", "name": "again"})

        assert exc.value.operation == "create"

    def test_update_unknown_id(self, gateway):
        with pytest.raises(RecordNotFound):
            gateway.update(READINGS, "missing", {"is_current": False})

    def test_returned_records_are_copies(self, gateway):
        record = gateway.create(DEVICES, {"plant_id": "p1", "name": "p1"})
        record.fields["name"] = "mutated"

        assert gateway.find_by_natural_key(DEVICES, "p1").get("name") == "p1"

    def test_list_applies_filters_and_limit(self, gateway):
        for i in range(5):
            gateway.create(READINGS, {
                "sensor_data_id": f"k{i}",
                "plant_id": "p1" if i % 2 == 0 else "p2",
                "is_current": True,
            })

        listed = gateway.list_by_filter(READINGS, {"plant_id": "p1", "is_current": True}, 2)

        assert [r.get("sensor_data_id") for r in listed] == ["k0", "k2"]

    def test_unknown_collection(self, gateway):
        with pytest.raises(PersistenceError):
            gateway.find_by_natural_key("nope", "x")

    def test_fail_next_is_consumed(self, gateway):
        gateway.fail_next("find")

        with pytest.raises(PersistenceError):
            gateway.find_by_natural_key(DEVICES, "p1")
        assert gateway.find_by_natural_key(DEVICES, "p1") is None


class TestFindOrCreate:

    def test_created_then_found(self, gateway):
        fields = {"plant_id": "p1", "name": "p1"}

        first = find_or_create(gateway, DEVICES, "p1", fields)
        second = find_or_create(gateway, DEVICES, "p1", fields)

        assert first.status is LookupStatus.CREATED
        assert first.created
        assert second.status is LookupStatus.FOUND
        assert second.record.id == first.record.id
