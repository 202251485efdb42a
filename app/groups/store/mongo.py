"""
MongoDB store backend using Motor client sessions.

Units of work run inside ``ClientSession.with_transaction``, which retries
the whole callback on TransientTransactionError (write conflicts between
concurrent transactions) and retries commits on
UnknownTransactionCommitResult. Transactions need a replica set.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from app.groups.errors import StoreError
from app.groups.store.base import Document, Filter, Sort, StoreBackend, Transaction
from app.groups.store.collections import (
    ATTENDANCE_RESPONSES,
    GROUP_MEMBERS,
    GROUPS,
    OCCURRENCES,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MongoTransaction(Transaction):
    """Collection calls bound to one client session (or none, for plain reads)."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        session: Optional[AsyncIOMotorClientSession],
        in_chunk_size: int = 10,
    ):
        self._db = db
        self._session = session
        self._in_chunk_size = in_chunk_size

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return await self._db[collection].find_one({"_id": doc_id}, session=self._session)

    async def get_by_ids(self, collection: str, ids: Sequence[str]) -> List[Document]:
        unique_ids = list(dict.fromkeys(ids))
        docs: List[Document] = []
        for start in range(0, len(unique_ids), self._in_chunk_size):
            chunk = unique_ids[start:start + self._in_chunk_size]
            cursor = self._db[collection].find({"_id": {"$in": chunk}}, session=self._session)
            docs.extend(await cursor.to_list(length=None))
        return docs

    async def find(self, collection: str, filter: Filter, sort: Optional[Sort] = None) -> List[Document]:
        cursor = self._db[collection].find(filter, session=self._session)
        if sort:
            cursor = cursor.sort(list(sort))
        return await cursor.to_list(length=None)

    async def insert(self, collection: str, doc: Document) -> None:
        await self._db[collection].insert_one(doc, session=self._session)

    async def insert_many(self, collection: str, docs: Sequence[Document]) -> None:
        if docs:
            await self._db[collection].insert_many(list(docs), session=self._session)

    async def update(
        self,
        collection: str,
        doc_id: str,
        set_fields: Optional[Document] = None,
        inc: Optional[Dict[str, int]] = None,
    ) -> None:
        update: Document = {}
        if set_fields:
            update["$set"] = set_fields
        if inc:
            update["$inc"] = inc
        if update:
            await self._db[collection].update_one({"_id": doc_id}, update, session=self._session)

    async def replace(self, collection: str, doc: Document) -> None:
        await self._db[collection].replace_one(
            {"_id": doc["_id"]}, doc, upsert=True, session=self._session
        )

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._db[collection].delete_one({"_id": doc_id}, session=self._session)

    async def delete_many(self, collection: str, filter: Filter) -> int:
        result = await self._db[collection].delete_many(filter, session=self._session)
        return result.deleted_count


class MongoBackend(StoreBackend):
    """
    Store backend over a Motor client.

    Args:
        client: Connected Motor client (sessions are started from it)
        db: Database holding the group collections
        in_chunk_size: Max ids per ``$in`` query in ``get_by_ids``
    """

    def __init__(
        self,
        client: AsyncIOMotorClient,
        db: AsyncIOMotorDatabase,
        in_chunk_size: int = 10,
    ):
        self._client = client
        self._db = db
        self._in_chunk_size = in_chunk_size

    async def run_in_transaction(self, work: Callable[[Transaction], Awaitable[T]]) -> T:
        async def callback(session: AsyncIOMotorClientSession) -> T:
            return await work(MongoTransaction(self._db, session, self._in_chunk_size))

        try:
            async with await self._client.start_session() as session:
                return await session.with_transaction(callback)
        except PyMongoError as e:
            logger.error(f"MongoDB transaction failed: {e}")
            raise StoreError() from e

    async def read(self, work: Callable[[Transaction], Awaitable[T]]) -> T:
        try:
            return await work(MongoTransaction(self._db, None, self._in_chunk_size))
        except PyMongoError as e:
            logger.error(f"MongoDB read failed: {e}")
            raise StoreError() from e


async def create_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes the group collections rely on."""
    await db[GROUPS].create_index("invite_code", unique=True)

    await db[GROUP_MEMBERS].create_index("group_id")
    await db[GROUP_MEMBERS].create_index("user_id")

    await db[OCCURRENCES].create_index([("group_id", ASCENDING), ("date", ASCENDING)])

    await db[ATTENDANCE_RESPONSES].create_index("occurrence_id")
    await db[ATTENDANCE_RESPONSES].create_index("group_id")

    logger.info("Group collection indexes ensured")
