#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - JSON File Document Store
Хранилище документов в JSON файлах (один файл на коллекцию)

Запись атомарная через временный файл. Поврежденный файл сохраняется
рядом с суффиксом .corrupted и коллекция начинается заново.

Версия: 1.0.0
Дата: 2025-07-14
"""

import asyncio
import copy
import json
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
import logging

from core.errors import NotFound, PersistenceFailure
from database.store import DocumentStore, Record, Filter, apply_query, merge_documents

logger = logging.getLogger(__name__)


class JsonFileDocumentStore(DocumentStore):
    """Документы коллекции хранятся в одном JSON файле {key: record}"""

    def __init__(self, data_dir: Path):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.file_lock = threading.RLock()
        self.save_lock = asyncio.Lock()

    def _collection_file(self, collection: str) -> Path:
        return self.data_dir / (collection.replace("/", "__") + ".json")

    # ===== SYNC I/O (выполняется в пуле потоков) =====

    def _load_sync(self, collection: str) -> Dict[str, Record]:
        path = self._collection_file(collection)
        with self.file_lock:
            if not path.exists():
                return {}
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.error(f"❌ Файл коллекции {collection} поврежден: {e}")
                self._handle_corruption(path)
                return {}

        if not isinstance(data, dict):
            logger.error(f"❌ Неожиданная структура файла {path}")
            self._handle_corruption(path)
            return {}
        return data

    def _handle_corruption(self, path: Path) -> None:
        """Сохраняем поврежденный файл и начинаем коллекцию заново"""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        corrupted = path.with_suffix(f".corrupted_{timestamp}.json")
        with self.file_lock:
            if path.exists():
                shutil.move(path, corrupted)
                logger.warning(f"⚠️ Поврежденный файл перемещен в {corrupted}")

    def _save_sync(self, collection: str, data: Dict[str, Record]) -> None:
        """Атомарное сохранение через временный файл"""
        path = self._collection_file(collection)
        temp_file = path.with_suffix('.tmp')
        with self.file_lock:
            try:
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                temp_file.replace(path)
            except Exception:
                if temp_file.exists():
                    temp_file.unlink()
                raise

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"❌ Ошибка файлового хранилища: {e}")
            raise PersistenceFailure(f"Ошибка файлового хранилища: {e}") from e

    # ===== DOCUMENT STORE =====

    async def get(self, collection: str, key: str) -> Record:
        data = await self._run(self._load_sync, collection)
        if key not in data:
            raise NotFound(collection, key)
        return data[key]

    async def set(self, collection: str, key: str, record: Record, merge: bool = False) -> None:
        async with self.save_lock:
            data = await self._run(self._load_sync, collection)
            if merge and key in data:
                data[key] = merge_documents(data[key], record)
            else:
                data[key] = copy.deepcopy(record)
            await self._run(self._save_sync, collection, data)
        logger.debug(f"💾 Сохранено {collection}/{key}")
        self._notify(collection, key, data[key])

    async def delete(self, collection: str, key: str) -> None:
        async with self.save_lock:
            data = await self._run(self._load_sync, collection)
            if data.pop(key, None) is None:
                return
            await self._run(self._save_sync, collection, data)
        self._notify(collection, key, None)

    async def query(self, collection: str, filters: Optional[List[Filter]] = None,
                    order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        data = await self._run(self._load_sync, collection)
        return apply_query(list(data.values()), filters, order_by, descending)
