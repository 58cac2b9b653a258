# database/__init__.py

import logging

from config import StorageBackend, StorageConfig
from database.store import DocumentStore

logger = logging.getLogger(__name__)

def create_store(storage: StorageConfig) -> DocumentStore:
    """Хранилище документов по конфигурации"""
    if storage.backend is StorageBackend.MEMORY:
        from database.memory_store import InMemoryDocumentStore
        store = InMemoryDocumentStore()
    elif storage.backend is StorageBackend.REDIS:
        from database.redis_store import RedisDocumentStore
        store = RedisDocumentStore(storage.redis_url, prefix=storage.redis_prefix)
    else:
        from database.json_store import JsonFileDocumentStore
        store = JsonFileDocumentStore(storage.data_dir)

    logger.info(f"💾 Хранилище: {storage.backend.value}")
    return store
