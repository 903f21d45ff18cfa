from __future__ import annotations

import copy
from collections import defaultdict
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Set
from uuid import uuid4

from .gateway import DuplicateKey, PersistenceError, PersistenceGateway, Record, RecordNotFound


class InMemoryGateway(PersistenceGateway):
    """Dict-backed store for tests and ``--dry-run``.

    Natural keys are unique per collection, like the unique indexes of the
    SQL store. Returned records are deep copies.
    """

    def __init__(self, natural_keys: Mapping[str, str]) -> None:
        self._natural_keys = dict(natural_keys)
        self._items: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._lock = Lock()
        self._pending_failures: Dict[str, int] = defaultdict(int)
        self._failing_update_ids: Set[str] = set()

    # -- failure injection -------------------------------------------------

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise PersistenceError."""
        with self._lock:
            self._pending_failures[operation] += times

    def fail_updates_for(self, record_id: str) -> None:
        with self._lock:
            self._failing_update_ids.add(record_id)

    def _maybe_fail(self, collection: str, operation: str) -> None:
        if self._pending_failures[operation] > 0:
            self._pending_failures[operation] -= 1
            raise PersistenceError(collection, operation, "injected failure")

    # -- gateway -----------------------------------------------------------

    def find_by_natural_key(self, collection: str, key: str) -> Optional[Record]:
        key_field = self._key_field(collection)
        with self._lock:
            self._maybe_fail(collection, "find")
            for record_id, fields in self._items[collection].items():
                if fields.get(key_field) == key:
                    return self._copy(collection, record_id, fields)
        return None

    def create(self, collection: str, fields: Mapping[str, Any]) -> Record:
        key_field = self._key_field(collection)
        key = fields.get(key_field)
        with self._lock:
            self._maybe_fail(collection, "create")
            if any(f.get(key_field) == key for f in self._items[collection].values()):
                raise DuplicateKey(collection, key)
            record_id = uuid4().hex
            self._items[collection][record_id] = copy.deepcopy(dict(fields))
            return self._copy(collection, record_id, self._items[collection][record_id])

    def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        with self._lock:
            self._maybe_fail(collection, "update")
            if record_id in self._failing_update_ids:
                raise PersistenceError(collection, "update", f"injected failure for {record_id}")
            stored = self._items[collection].get(record_id)
            if stored is None:
                raise RecordNotFound(collection, record_id)
            stored.update(copy.deepcopy(dict(fields)))
            return self._copy(collection, record_id, stored)

    def list_by_filter(
        self,
        collection: str,
        filters: Mapping[str, Any],
        limit: int,
    ) -> List[Record]:
        with self._lock:
            self._maybe_fail(collection, "list")
            matches = [
                self._copy(collection, record_id, fields)
                for record_id, fields in self._items[collection].items()
                if all(fields.get(name) == value for name, value in filters.items())
            ]
        return matches[:limit]

    # -- helpers -----------------------------------------------------------

    def all(self, collection: str) -> List[Record]:
        """Every record of ``collection`` in insertion order."""
        with self._lock:
            return [
                self._copy(collection, record_id, fields)
                for record_id, fields in self._items[collection].items()
            ]

    def _key_field(self, collection: str) -> str:
        try:
            return self._natural_keys[collection]
        except KeyError:
            raise PersistenceError(collection, "lookup", "unknown collection") from None

    @staticmethod
    def _copy(collection: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        return Record(id=record_id, collection=collection, fields=copy.deepcopy(dict(fields)))
