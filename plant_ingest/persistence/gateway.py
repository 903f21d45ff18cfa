"""Persistence gateway contract.

The ingestion pipeline only ever talks to the store through these four
operations. Implementations do not deduplicate; callers make writes
idempotent by looking up a natural key first.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class PersistenceError(Exception):
    """Fallo de una operación contra el store."""

    def __init__(self, collection: str, operation: str, message: str):
        self.collection = collection
        self.operation = operation
        super().__init__(f"{operation} on {collection!r} failed: {message}")


class DuplicateKey(PersistenceError):
    """Otro writer creó el mismo natural key primero."""

    def __init__(self, collection: str, key: Any):
        self.key = key
        super().__init__(collection, "create", f"duplicate natural key {key!r}")


class RecordNotFound(PersistenceError):
    """El id interno no existe en la colección."""

    def __init__(self, collection: str, record_id: str):
        self.record_id = record_id
        super().__init__(collection, "update", f"record {record_id!r} not found")


@dataclass
class Record:
    id: str
    collection: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


class PersistenceGateway(ABC):
    """Abstract document store.

    ``find_by_natural_key`` resolves the collection's natural key field
    (device key for devices, idempotency key for readings).
    """

    @abstractmethod
    def find_by_natural_key(self, collection: str, key: str) -> Optional[Record]:
        ...

    @abstractmethod
    def create(self, collection: str, fields: Mapping[str, Any]) -> Record:
        ...

    @abstractmethod
    def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        ...

    @abstractmethod
    def list_by_filter(
        self,
        collection: str,
        filters: Mapping[str, Any],
        limit: int,
    ) -> List[Record]:
        ...

    def ping(self) -> bool:
        return True


class LookupStatus(Enum):
    FOUND = "found"
    CREATED = "created"


@dataclass(frozen=True)
class FindOrCreateResult:
    status: LookupStatus
    record: Record

    @property
    def created(self) -> bool:
        return self.status is LookupStatus.CREATED


def find_or_create(
    gateway: PersistenceGateway,
    collection: str,
    key: str,
    fields: Mapping[str, Any],
) -> FindOrCreateResult:
    """Look up ``key``; create the record from ``fields`` when absent.

    ``fields`` must already contain the natural key value. Not found is a
    ``None`` lookup, never an exception. Losing a create race to another
    writer resolves to FOUND.
    """
    existing = gateway.find_by_natural_key(collection, key)
    if existing is not None:
        return FindOrCreateResult(LookupStatus.FOUND, existing)
    try:
        created = gateway.create(collection, fields)
    except DuplicateKey:
        # Carrera con otro writer: el registro ya existe
        existing = gateway.find_by_natural_key(collection, key)
        if existing is None:
            raise
        return FindOrCreateResult(LookupStatus.FOUND, existing)
    return FindOrCreateResult(LookupStatus.CREATED, created)
