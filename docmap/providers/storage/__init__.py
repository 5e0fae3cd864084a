"""Storage providers implementing IStorageProvider.

    - InMemoryStorageProvider -- dict-backed, for tests and throwaway runs
    - SQLiteStorageProvider   -- aiosqlite-backed, the default
"""

from docmap.providers.storage.memory_storage import InMemoryStorageProvider
from docmap.providers.storage.sqlite_storage import SQLiteStorageProvider

__all__ = ["InMemoryStorageProvider", "SQLiteStorageProvider"]
