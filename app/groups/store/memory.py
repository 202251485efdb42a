"""
In-process store backend with optimistic concurrency.

Used for local development (STORE_BACKEND=memory) and the test suite.
Every committed document carries a version. A transaction buffers its
writes and remembers the version of each document and the result of each
query it read; at commit the reads are re-checked and the transaction is
retried from scratch if anything it saw has changed.
"""

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple, TypeVar

from app.groups.errors import TransactionConflictError
from app.groups.store.base import Document, Filter, Sort, StoreBackend, Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DELETED = object()


def _matches_condition(value: Any, condition: Any) -> bool:
    if not isinstance(condition, dict):
        return value == condition
    for op, operand in condition.items():
        if op == "$in":
            if value not in operand:
                return False
        elif op == "$ne":
            if value == operand:
                return False
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            if value is None:
                return False
            if op == "$gt" and not value > operand:
                return False
            if op == "$gte" and not value >= operand:
                return False
            if op == "$lt" and not value < operand:
                return False
            if op == "$lte" and not value <= operand:
                return False
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return True


def matches(doc: Document, filter: Filter) -> bool:
    return all(_matches_condition(doc.get(field), cond) for field, cond in filter.items())


def _sorted(docs: List[Document], sort: Optional[Sort]) -> List[Document]:
    if not sort:
        return docs
    for field, direction in reversed(list(sort)):
        docs.sort(key=lambda d: (d.get(field) is None, d.get(field)), reverse=direction < 0)
    return docs


class MemoryTransaction(Transaction):
    def __init__(self, backend: "MemoryBackend"):
        self._backend = backend
        self._read_versions: Dict[Tuple[str, str], Optional[int]] = {}
        self._query_snapshots: List[Tuple[str, Filter, FrozenSet[Tuple[str, int]]]] = []
        self._writes: Dict[Tuple[str, str], Any] = {}

    # Reads ---------------------------------------------------------

    def _committed(self, collection: str, doc_id: str) -> Optional[Tuple[int, Document]]:
        return self._backend._data[collection].get(doc_id)

    def _current(self, collection: str, doc_id: str) -> Optional[Document]:
        key = (collection, doc_id)
        if key in self._writes:
            written = self._writes[key]
            return None if written is _DELETED else copy.deepcopy(written)
        record = self._committed(collection, doc_id)
        if key not in self._read_versions:
            self._read_versions[key] = record[0] if record else None
        return copy.deepcopy(record[1]) if record else None

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        await asyncio.sleep(0)
        return self._current(collection, doc_id)

    async def get_by_ids(self, collection: str, ids: Sequence[str]) -> List[Document]:
        await asyncio.sleep(0)
        docs = []
        for doc_id in dict.fromkeys(ids):
            doc = self._current(collection, doc_id)
            if doc is not None:
                docs.append(doc)
        return docs

    async def find(self, collection: str, filter: Filter, sort: Optional[Sort] = None) -> List[Document]:
        await asyncio.sleep(0)
        committed = self._backend._data[collection]
        snapshot = frozenset(
            (doc_id, version)
            for doc_id, (version, doc) in committed.items()
            if matches(doc, filter)
        )
        self._query_snapshots.append((collection, dict(filter), snapshot))

        results: Dict[str, Document] = {
            doc_id: copy.deepcopy(doc)
            for doc_id, (_, doc) in committed.items()
            if matches(doc, filter)
        }
        for (coll, doc_id), written in self._writes.items():
            if coll != collection:
                continue
            results.pop(doc_id, None)
            if written is not _DELETED and matches(written, filter):
                results[doc_id] = copy.deepcopy(written)
        return _sorted(list(results.values()), sort)

    # Writes --------------------------------------------------------

    async def insert(self, collection: str, doc: Document) -> None:
        await asyncio.sleep(0)
        if self._current(collection, doc["_id"]) is not None:
            raise TransactionConflictError(f"Duplicate key {doc['_id']} in {collection}")
        self._writes[(collection, doc["_id"])] = copy.deepcopy(doc)

    async def update(
        self,
        collection: str,
        doc_id: str,
        set_fields: Optional[Document] = None,
        inc: Optional[Dict[str, int]] = None,
    ) -> None:
        await asyncio.sleep(0)
        doc = self._current(collection, doc_id)
        if doc is None:
            return
        doc.update(set_fields or {})
        for field, amount in (inc or {}).items():
            doc[field] = doc.get(field, 0) + amount
        self._writes[(collection, doc_id)] = doc

    async def replace(self, collection: str, doc: Document) -> None:
        await asyncio.sleep(0)
        self._current(collection, doc["_id"])
        self._writes[(collection, doc["_id"])] = copy.deepcopy(doc)

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.sleep(0)
        self._current(collection, doc_id)
        self._writes[(collection, doc_id)] = _DELETED

    async def delete_many(self, collection: str, filter: Filter) -> int:
        docs = await self.find(collection, filter)
        for doc in docs:
            self._writes[(collection, doc["_id"])] = _DELETED
        return len(docs)

    # Commit --------------------------------------------------------

    def _is_current(self) -> bool:
        data = self._backend._data
        for (collection, doc_id), version in self._read_versions.items():
            record = data[collection].get(doc_id)
            if (record[0] if record else None) != version:
                return False
        for collection, filter, snapshot in self._query_snapshots:
            current = frozenset(
                (doc_id, version)
                for doc_id, (version, doc) in data[collection].items()
                if matches(doc, filter)
            )
            if current != snapshot:
                return False
        return True

    def commit(self) -> bool:
        """Apply buffered writes if nothing read has changed. No awaits: atomic."""
        if not self._is_current():
            return False
        data = self._backend._data
        for (collection, doc_id), written in self._writes.items():
            if written is _DELETED:
                data[collection].pop(doc_id, None)
            else:
                data[collection][doc_id] = (self._backend._next_version(), written)
        return True


class MemoryBackend(StoreBackend):
    """Dict-of-dicts store; state lives as long as the process."""

    def __init__(self, max_retries: int = 5):
        self._data: Dict[str, Dict[str, Tuple[int, Document]]] = defaultdict(dict)
        self._version = 0
        self._max_retries = max_retries

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    async def run_in_transaction(self, work: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_retries + 1):
            tx = MemoryTransaction(self)
            result = await work(tx)
            if tx.commit():
                return result
            logger.warning(f"Transaction conflict, retrying (attempt {attempt}/{self._max_retries})")
        raise TransactionConflictError("Too many concurrent changes. Please try again.")

    def count(self, collection: str, filter: Optional[Filter] = None) -> int:
        """Committed documents matching ``filter``; handy in tests and debugging."""
        return sum(1 for _, doc in self._data[collection].values() if matches(doc, filter or {}))
