"""
Persistence package for the Premium service.

- base: the storage contract the engine depends on
- local_file: JSON files in a local data directory
- postgres: JSONB document collections on PostgreSQL
"""

from shared.config import PremiumConfig
from .base import StorageBackend
from .local_file import LocalFileStorage
from .postgres import PostgresDocumentStorage


def create_storage(config: PremiumConfig) -> StorageBackend:
    """Build the backend selected by ``config.storage``."""
    if config.storage == "local-file":
        return LocalFileStorage(config.local_data_dir)
    if config.storage == "document-db":
        return PostgresDocumentStorage(config.postgres_dsn, command_timeout=config.postgres_command_timeout)
    raise ValueError(f"Unknown storage kind: {config.storage}")


__all__ = ["StorageBackend", "LocalFileStorage", "PostgresDocumentStorage", "create_storage"]
