"""Persistence gateway and its implementations.

- gateway.py: contrato abstracto + find_or_create
- memory.py: store en memoria (tests, dry-run)
- sql.py / schema.py: store SQL con SQLAlchemy
"""

from .gateway import (
    DuplicateKey,
    FindOrCreateResult,
    LookupStatus,
    PersistenceError,
    PersistenceGateway,
    Record,
    RecordNotFound,
    find_or_create,
)
from .memory import InMemoryGateway
from .schema import DEVICE_KEY_FIELD, READING_KEY_FIELD, natural_keys
from .sql import SqlGateway

__all__ = [
    "DuplicateKey",
    "FindOrCreateResult",
    "LookupStatus",
    "PersistenceError",
    "PersistenceGateway",
    "Record",
    "RecordNotFound",
    "find_or_create",
    "InMemoryGateway",
    "SqlGateway",
    "DEVICE_KEY_FIELD",
    "READING_KEY_FIELD",
    "natural_keys",
]
