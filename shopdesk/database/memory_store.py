"""In-process RecordStore used by the test-suite and local runs."""

import copy
import operator
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from .record_store import (
    OPERATORS, RecordStore, WriteTransaction, Write, _MISSING, _strip_id,
    get_field, new_document_id,
)
from ..errors import NotFoundError, StoreError

_COMPARE = dict(zip(OPERATORS, (
    operator.eq, operator.ne, operator.lt, operator.le, operator.gt, operator.ge,
)))


class _BufferedTransaction(WriteTransaction):
    def __init__(self, store: "InMemoryRecordStore"):
        self.store = store
        self.creates: List[Write] = []
        self.updates: List[Write] = []

    async def create(self, collection, data, doc_id=None):
        doc_id = doc_id or new_document_id()
        self.creates.append(Write(collection, doc_id, copy.deepcopy(_strip_id(data))))
        return doc_id

    async def update(self, collection, doc_id, data):
        self.updates.append(Write(collection, doc_id, copy.deepcopy(_strip_id(data))))


class InMemoryRecordStore(RecordStore):
    """Dict-backed store with the same semantics as the JSONB store.

    Ordering by a field that some matched documents lack raises
    ``StoreError``, the way a schema-less store refuses to sort a
    heterogeneous result. ``write_count`` counts committed document writes.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.write_count = 0

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def create(self, collection, data, doc_id=None):
        doc_id = doc_id or new_document_id()
        docs = self._collection(collection)
        if doc_id in docs:
            raise StoreError(f"Document {collection}/{doc_id} already exists")
        docs[doc_id] = copy.deepcopy(_strip_id(data))
        self.write_count += 1
        return doc_id

    async def get(self, collection, doc_id):
        data = self._collection(collection).get(doc_id)
        if data is None:
            return None
        return dict(copy.deepcopy(data), id=doc_id)

    async def update(self, collection, doc_id, data):
        docs = self._collection(collection)
        if doc_id not in docs:
            raise NotFoundError("document", f"{collection}/{doc_id}")
        docs[doc_id].update(copy.deepcopy(_strip_id(data)))
        self.write_count += 1

    async def query(self, collection, filters=(), order_by=None, descending=False, limit=None):
        matched = []
        for doc_id in sorted(self._collection(collection)):
            data = self._collection(collection)[doc_id]
            if all(self._matches(data, f) for f in filters):
                matched.append(dict(copy.deepcopy(data), id=doc_id))

        if order_by:
            if any(get_field(doc, order_by) is _MISSING for doc in matched):
                raise StoreError(f"Cannot order {collection} by missing field {order_by}")
            try:
                matched.sort(key=lambda doc: doc["id"])
                matched.sort(key=lambda doc: get_field(doc, order_by), reverse=descending)
            except TypeError as e:
                raise StoreError(f"Cannot order {collection} by {order_by}: {e}") from e

        if limit:
            matched = matched[:limit]
        return matched

    async def batch_update(self, writes):
        for write in writes:
            if write.doc_id not in self._collection(write.collection):
                raise NotFoundError("document", f"{write.collection}/{write.doc_id}")
        for write in writes:
            await self.update(write.collection, write.doc_id, write.data)

    @asynccontextmanager
    async def transaction(self):
        tx = _BufferedTransaction(self)
        yield tx
        for write in tx.creates:
            if write.doc_id in self._collection(write.collection):
                raise StoreError(f"Document {write.collection}/{write.doc_id} already exists")
        for write in tx.updates:
            if write.doc_id not in self._collection(write.collection) and not any(
                c.collection == write.collection and c.doc_id == write.doc_id
                for c in tx.creates
            ):
                raise NotFoundError("document", f"{write.collection}/{write.doc_id}")
        for write in tx.creates:
            await self.create(write.collection, write.data, write.doc_id)
        for write in tx.updates:
            await self.update(write.collection, write.doc_id, write.data)

    @staticmethod
    def _matches(data: Dict[str, Any], field_filter) -> bool:
        if field_filter.op not in _COMPARE:
            raise StoreError(f"Unsupported filter operator: {field_filter.op}")
        value = get_field(data, field_filter.field)
        if value is _MISSING:
            return False
        try:
            return bool(_COMPARE[field_filter.op](value, field_filter.value))
        except TypeError:
            return False

    # Test helpers

    def seed(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Insert a document without counting it as a write"""
        self._collection(collection)[doc_id] = copy.deepcopy(data)

    def peek(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None
