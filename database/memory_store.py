# database/memory_store.py
"""Хранилище документов в памяти процесса (тесты, режим memory)"""

import asyncio
import copy
from typing import Dict, List, Optional

from core.errors import NotFound
from database.store import DocumentStore, Record, Filter, apply_query, merge_documents


class InMemoryDocumentStore(DocumentStore):

    def __init__(self, latency: float = 0.0):
        super().__init__()
        self.latency = latency
        self._collections: Dict[str, Dict[str, Record]] = {}
        self.write_count = 0
        self.read_count = 0

    async def _pause(self) -> None:
        # каждая операция - точка переключения event loop
        await asyncio.sleep(self.latency)

    async def get(self, collection: str, key: str) -> Record:
        await self._pause()
        self.read_count += 1
        record = self._collections.get(collection, {}).get(key)
        if record is None:
            raise NotFound(collection, key)
        return copy.deepcopy(record)

    async def set(self, collection: str, key: str, record: Record, merge: bool = False) -> None:
        await self._pause()
        documents = self._collections.setdefault(collection, {})
        if merge and key in documents:
            stored = merge_documents(documents[key], record)
        else:
            stored = copy.deepcopy(record)
        documents[key] = stored
        self.write_count += 1
        self._notify(collection, key, stored)

    async def delete(self, collection: str, key: str) -> None:
        await self._pause()
        if self._collections.get(collection, {}).pop(key, None) is not None:
            self._notify(collection, key, None)

    async def query(self, collection: str, filters: Optional[List[Filter]] = None,
                    order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        await self._pause()
        records = [copy.deepcopy(r) for r in self._collections.get(collection, {}).values()]
        return apply_query(records, filters, order_by, descending)

    def keys(self, collection: str) -> List[str]:
        return list(self._collections.get(collection, {}))
