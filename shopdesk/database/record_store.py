"""Record store contract and its PostgreSQL (JSONB) implementation.

Documents are JSON objects grouped in collections. Nested collections use
slash separated paths, e.g. ``users/<uid>/orders``. Reads return plain
dicts that carry the document id under ``"id"``.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, NamedTuple, Optional, Sequence

import asyncpg

from ..errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

OPERATORS = ("==", "!=", "<", "<=", ">", ">=")

_MISSING = object()


class FieldFilter(NamedTuple):
    field: str
    op: str
    value: Any


class Write(NamedTuple):
    collection: str
    doc_id: str
    data: Dict[str, Any]


def new_document_id() -> str:
    return uuid.uuid4().hex


def get_field(document: Dict[str, Any], path: str, default: Any = _MISSING) -> Any:
    """Resolve a dotted field path; returns ``default`` when absent"""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return value


def _strip_id(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k != "id"}


class WriteTransaction(ABC):
    """Writes buffered in a store transaction"""

    @abstractmethod
    async def create(self, collection: str, data: Dict[str, Any],
                     doc_id: Optional[str] = None) -> str:
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...


class RecordStore(ABC):
    """Document store the order services depend on"""

    @abstractmethod
    async def create(self, collection: str, data: Dict[str, Any],
                     doc_id: Optional[str] = None) -> str:
        """Insert a document and return its id"""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Point read; None when the document does not exist"""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Top-level partial merge; NotFoundError when absent"""

    @abstractmethod
    async def query(self, collection: str, filters: Sequence[FieldFilter] = (),
                    order_by: Optional[str] = None, descending: bool = False,
                    limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Filtered, optionally sorted and limited read"""

    @abstractmethod
    async def batch_update(self, writes: Sequence[Write]) -> None:
        """Apply every partial update or none of them"""

    @abstractmethod
    def transaction(self):
        """Async context manager yielding a WriteTransaction"""


class PostgresTransaction(WriteTransaction):
    def __init__(self, conn):
        self.conn = conn

    async def create(self, collection, data, doc_id=None):
        doc_id = doc_id or new_document_id()
        await self.conn.execute("""
            INSERT INTO documents (collection, id, data)
            VALUES ($1, $2, $3::jsonb)
        """, collection, doc_id, json.dumps(_strip_id(data)))
        return doc_id

    async def update(self, collection, doc_id, data):
        result = await self.conn.execute("""
            UPDATE documents
            SET data = data || $3::jsonb,
                updated_at = CURRENT_TIMESTAMP
            WHERE collection = $1 AND id = $2
        """, collection, doc_id, json.dumps(_strip_id(data)))
        if result != "UPDATE 1":
            raise NotFoundError("document", f"{collection}/{doc_id}")


class PostgresRecordStore(RecordStore):
    """RecordStore backed by a single JSONB table"""

    _errors = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

    def __init__(self, db):
        self.db = db

    async def create(self, collection, data, doc_id=None):
        try:
            async with self.db.pool.acquire() as conn:
                return await PostgresTransaction(conn).create(collection, data, doc_id)
        except self._errors as e:
            raise StoreError(f"Creating document in {collection} failed: {e}") from e

    async def get(self, collection, doc_id):
        try:
            async with self.db.pool.acquire() as conn:
                raw = await conn.fetchval("""
                    SELECT data FROM documents
                    WHERE collection = $1 AND id = $2
                """, collection, doc_id)
        except self._errors as e:
            raise StoreError(f"Reading {collection}/{doc_id} failed: {e}") from e
        if raw is None:
            return None
        return dict(json.loads(raw), id=doc_id)

    async def update(self, collection, doc_id, data):
        try:
            async with self.db.pool.acquire() as conn:
                await PostgresTransaction(conn).update(collection, doc_id, data)
        except self._errors as e:
            raise StoreError(f"Updating {collection}/{doc_id} failed: {e}") from e

    async def query(self, collection, filters=(), order_by=None, descending=False, limit=None):
        sql = "SELECT id, data FROM documents WHERE collection = $1"
        params: List[Any] = [collection]

        for field_filter in filters:
            if field_filter.op not in OPERATORS:
                raise StoreError(f"Unsupported filter operator: {field_filter.op}")
            op = "=" if field_filter.op == "==" else field_filter.op
            params.append(field_filter.field.split("."))
            params.append(json.dumps(field_filter.value))
            sql += f" AND (data #> ${len(params) - 1}::text[]) {op} ${len(params)}::jsonb"

        if order_by:
            params.append(order_by.split("."))
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY data #> ${len(params)}::text[] {direction} NULLS LAST, id"
        else:
            sql += " ORDER BY id"

        if limit:
            params.append(limit)
            sql += f" LIMIT ${len(params)}"

        try:
            async with self.db.pool.acquire() as conn:
                rows = await conn.fetch(sql, *params)
        except self._errors as e:
            raise StoreError(f"Querying {collection} failed: {e}") from e
        return [dict(json.loads(row["data"]), id=row["id"]) for row in rows]

    async def batch_update(self, writes):
        try:
            async with self.db.pool.acquire() as conn:
                async with conn.transaction():
                    tx = PostgresTransaction(conn)
                    for write in writes:
                        await tx.update(write.collection, write.doc_id, write.data)
        except self._errors as e:
            raise StoreError(f"Batch write of {len(writes)} documents failed: {e}") from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresTransaction]:
        try:
            async with self.db.pool.acquire() as conn:
                async with conn.transaction():
                    yield PostgresTransaction(conn)
        except self._errors as e:
            raise StoreError(f"Transaction failed: {e}") from e
