from skillbase.store.base import Store
from skillbase.store.memory import InMemoryStore
from skillbase.store.postgres import PostgresStore

__all__ = [
    "InMemoryStore",
    "PostgresStore",
    "Store",
]
