"""Storage backends for the webhook pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

from scanhook.store.base import Store
from scanhook.store.memory import MemoryStore

if TYPE_CHECKING:
    from scanhook.config import StorageConfig

__all__ = ["MemoryStore", "Store", "create_store"]


def create_store(config: StorageConfig) -> Store:
    """Build the backend selected by *config*."""
    if config.backend == "postgres":
        from scanhook.store.postgres import PostgresStore

        return PostgresStore(config.database_url)
    return MemoryStore()
