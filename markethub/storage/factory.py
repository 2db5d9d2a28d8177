"""Build the configured storage backend."""

from markethub.config import Settings
from markethub.storage.base import Storage
from markethub.storage.memory import MemoryStorage
from markethub.storage.sql import SqlStorage


def build_storage(config: Settings) -> Storage:
    if config.STORAGE_BACKEND == "memory":
        return MemoryStorage()
    return SqlStorage(config.DATABASE_URL, echo=config.DEBUG)
