"""
Abstract document-store boundary.

The membership store is written once against these primitives; backends
decide how a unit of work becomes atomic. Documents are plain dicts keyed by
``_id``. Filters use the MongoDB subset the domain needs: equality plus
``$in``, ``$ne``, ``$gt``, ``$gte``, ``$lt`` and ``$lte``.

Example:
    async def work(tx: Transaction) -> int:
        group = await tx.get("groups", group_id)
        await tx.update("groups", group_id, inc={"member_count": 1})
        return group["member_count"] + 1

    count = await backend.run_in_transaction(work)
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

Document = Dict[str, Any]
Filter = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]


class Transaction(ABC):
    """Reads and writes that belong to one unit of work."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Fetch one document by primary key, or None."""
        pass

    @abstractmethod
    async def get_by_ids(self, collection: str, ids: Sequence[str]) -> List[Document]:
        """
        Fetch many documents by primary key.

        Missing ids are skipped. Backends with query-size limits chunk the
        ids themselves; callers pass any number.
        """
        pass

    @abstractmethod
    async def find(
        self,
        collection: str,
        filter: Filter,
        sort: Optional[Sort] = None,
    ) -> List[Document]:
        pass

    @abstractmethod
    async def insert(self, collection: str, doc: Document) -> None:
        pass

    async def insert_many(self, collection: str, docs: Sequence[Document]) -> None:
        for doc in docs:
            await self.insert(collection, doc)

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        set_fields: Optional[Document] = None,
        inc: Optional[Dict[str, int]] = None,
    ) -> None:
        """Apply ``$set`` / ``$inc`` to one existing document."""
        pass

    @abstractmethod
    async def replace(self, collection: str, doc: Document) -> None:
        """Insert or fully replace the document with ``doc["_id"]``."""
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        pass

    @abstractmethod
    async def delete_many(self, collection: str, filter: Filter) -> int:
        """Delete matching documents and return how many were removed."""
        pass


class StoreBackend(ABC):
    """Runs units of work against a document store."""

    @abstractmethod
    async def run_in_transaction(self, work: Callable[[Transaction], Awaitable[T]]) -> T:
        """
        Run ``work`` so that all of its writes apply together or not at all.

        ``work`` may be invoked more than once when the backend retries after
        a conflicting concurrent commit, so it must do all of its reads
        through the transaction it is given. Exceptions raised by ``work``
        abort the transaction and propagate unchanged.

        Raises:
            StoreError: the store failed or conflicts persisted after retries
        """
        pass

    async def read(self, work: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run read-only ``work``. Backends may skip transaction overhead."""
        return await self.run_in_transaction(work)

    async def close(self) -> None:
        pass
