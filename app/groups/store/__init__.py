"""
Group persistence.

- base: Transaction / StoreBackend boundary
- memory: In-process backend with optimistic concurrency
- mongo: Motor backend using multi-document transactions
- membership_store: Atomic group operations on top of a backend
"""

from app.groups.store.base import StoreBackend, Transaction
from app.groups.store.memory import MemoryBackend
from app.groups.store.mongo import MongoBackend, create_indexes

__all__ = [
    "StoreBackend",
    "Transaction",
    "MemoryBackend",
    "MongoBackend",
    "create_indexes",
]
