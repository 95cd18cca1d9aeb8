# Infrastructure Card Store Adapters Package
from .memory_store import InMemoryCardStore
from .sqlite_store import SqliteCardStore

__all__ = ["InMemoryCardStore", "SqliteCardStore"]
