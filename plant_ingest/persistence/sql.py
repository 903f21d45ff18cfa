"""SQL store - implementación del gateway con SQLAlchemy Core."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import MetaData, Table, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..common.db import check_connection
from .gateway import DuplicateKey, PersistenceError, PersistenceGateway, Record, RecordNotFound
from .schema import build_tables, natural_keys

logger = logging.getLogger(__name__)


class SqlGateway(PersistenceGateway):
    """Gateway over the devices and readings tables.

    Every operation runs in its own short transaction; there is no
    locking across calls, so concurrent writers are last-write-wins.
    """

    def __init__(
        self,
        engine: Engine,
        devices_collection: str = "plants",
        readings_collection: str = "plant_sensor_data",
    ):
        self._engine = engine
        self._metadata = MetaData()
        devices, readings = build_tables(self._metadata, devices_collection, readings_collection)
        self._tables: Dict[str, Table] = {
            devices_collection: devices,
            readings_collection: readings,
        }
        self._natural_keys = natural_keys(devices_collection, readings_collection)

    def create_schema(self) -> None:
        """Create missing tables and indexes. Safe to run repeatedly."""
        self._metadata.create_all(self._engine, checkfirst=True)
        logger.info("[STORE] Schema ready tables=%s", sorted(self._tables))

    def ping(self) -> bool:
        return check_connection(self._engine)

    def find_by_natural_key(self, collection: str, key: str) -> Optional[Record]:
        table = self._table(collection)
        key_column = table.c[self._natural_keys[collection]]
        stmt = select(table).where(key_column == key).limit(1)
        try:
            with self._engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as e:
            raise PersistenceError(collection, "find", str(e)) from e
        return self._to_record(collection, row) if row is not None else None

    def create(self, collection: str, fields: Mapping[str, Any]) -> Record:
        table = self._table(collection)
        values = self._checked_values(collection, table, fields)
        values["id"] = uuid4().hex
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(table).values(**values))
                return self._fetch(conn, collection, table, values["id"])
        except IntegrityError as e:
            key = values.get(self._natural_keys[collection])
            if self.find_by_natural_key(collection, key) is not None:
                raise DuplicateKey(collection, key) from e
            raise PersistenceError(collection, "create", str(e)) from e
        except SQLAlchemyError as e:
            raise PersistenceError(collection, "create", str(e)) from e

    def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        table = self._table(collection)
        values = self._checked_values(collection, table, fields)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    update(table).where(table.c.id == record_id).values(**values)
                )
                if result.rowcount == 0:
                    raise RecordNotFound(collection, record_id)
                return self._fetch(conn, collection, table, record_id)
        except SQLAlchemyError as e:
            raise PersistenceError(collection, "update", str(e)) from e

    def list_by_filter(
        self,
        collection: str,
        filters: Mapping[str, Any],
        limit: int,
    ) -> List[Record]:
        table = self._table(collection)
        stmt = select(table)
        for name, value in filters.items():
            if name not in table.c:
                raise PersistenceError(collection, "list", f"unknown field {name!r}")
            stmt = stmt.where(table.c[name] == value)
        stmt = stmt.order_by(table.c.id).limit(limit)
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise PersistenceError(collection, "list", str(e)) from e
        return [self._to_record(collection, row) for row in rows]

    # ------------------------------------------------------------------

    def _table(self, collection: str) -> Table:
        table = self._tables.get(collection)
        if table is None:
            raise PersistenceError(collection, "lookup", "unknown collection")
        return table

    @staticmethod
    def _checked_values(collection: str, table: Table, fields: Mapping[str, Any]) -> Dict[str, Any]:
        unknown = [name for name in fields if name not in table.c or name == "id"]
        if unknown:
            raise PersistenceError(collection, "write", f"unknown fields {unknown}")
        return dict(fields)

    def _fetch(self, conn: Connection, collection: str, table: Table, record_id: str) -> Record:
        row = conn.execute(select(table).where(table.c.id == record_id)).mappings().one()
        return self._to_record(collection, row)

    @staticmethod
    def _to_record(collection: str, row: Mapping[str, Any]) -> Record:
        fields = {name: value for name, value in row.items() if name != "id"}
        return Record(id=row["id"], collection=collection, fields=fields)
