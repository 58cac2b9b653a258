#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Redis Document Store
Хранилище документов в Redis с лентой изменений через pub/sub

Ключи:
    {prefix}:doc:{collection}:{key}      - JSON документа
    {prefix}:idx:{collection}            - множество ключей коллекции
    {prefix}:changes:{collection}:{key}  - канал изменений документа

Все подписки слушают одно соединение pub/sub (psubscribe на {prefix}:changes:*).

Версия: 1.0.0
Дата: 2025-07-14
"""

import asyncio
import json
from typing import Dict, List, Optional, Any, Tuple
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from core.errors import NotFound, PersistenceFailure
from database.store import DocumentStore, SubscriptionHandle, Record, Filter, apply_query, merge_documents
from utils.decorators import retry_on_exception

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError)


class RedisDocumentStore(DocumentStore):
    """Документы в Redis; подписки доставляются через pub/sub"""

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "mindreset",
                 client: Optional[redis.Redis] = None):
        super().__init__()
        self.prefix = prefix
        self.client = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=10
        )
        self._channels: Dict[str, Tuple[str, str]] = {}
        self._listener: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()

    # ===== KEYS =====

    def _doc_key(self, collection: str, key: str) -> str:
        return f"{self.prefix}:doc:{collection}:{key}"

    def _index_key(self, collection: str) -> str:
        return f"{self.prefix}:idx:{collection}"

    def _channel(self, collection: str, key: str) -> str:
        return f"{self.prefix}:changes:{collection}:{key}"

    # ===== RAW OPERATIONS =====

    @retry_on_exception(retries=3, delay=0.5, exceptions=TRANSIENT_ERRORS)
    async def _read(self, collection: str, key: str) -> Optional[str]:
        return await self.client.get(self._doc_key(collection, key))

    @retry_on_exception(retries=3, delay=0.5, exceptions=TRANSIENT_ERRORS)
    async def _write(self, collection: str, key: str, payload: str) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(self._doc_key(collection, key), payload)
            pipe.sadd(self._index_key(collection), key)
            pipe.publish(self._channel(collection, key), payload)
            await pipe.execute()

    @retry_on_exception(retries=3, delay=0.5, exceptions=TRANSIENT_ERRORS)
    async def _remove(self, collection: str, key: str) -> int:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(self._doc_key(collection, key))
            pipe.srem(self._index_key(collection), key)
            pipe.publish(self._channel(collection, key), "null")
            deleted, _, _ = await pipe.execute()
        return deleted

    @retry_on_exception(retries=3, delay=0.5, exceptions=TRANSIENT_ERRORS)
    async def _read_all(self, collection: str) -> List[Optional[str]]:
        keys = sorted(await self.client.smembers(self._index_key(collection)))
        if not keys:
            return []
        return await self.client.mget([self._doc_key(collection, k) for k in keys])

    @staticmethod
    def _decode(raw: str) -> Record:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceFailure(f"Поврежденный JSON в Redis: {e}") from e

    # ===== DOCUMENT STORE =====

    async def get(self, collection: str, key: str) -> Record:
        try:
            raw = await self._read(collection, key)
        except RedisError as e:
            logger.error(f"❌ Redis: ошибка чтения {collection}/{key}: {e}")
            raise PersistenceFailure(str(e), collection=collection, key=key) from e
        if raw is None:
            raise NotFound(collection, key)
        return self._decode(raw)

    async def set(self, collection: str, key: str, record: Record, merge: bool = False) -> None:
        try:
            async with self._write_lock:
                if merge:
                    raw = await self._read(collection, key)
                    if raw is not None:
                        record = merge_documents(self._decode(raw), record)
                await self._write(collection, key, json.dumps(record, ensure_ascii=False))
        except RedisError as e:
            logger.error(f"❌ Redis: ошибка записи {collection}/{key}: {e}")
            raise PersistenceFailure(str(e), collection=collection, key=key) from e
        logger.debug(f"💾 Redis: сохранено {collection}/{key}")

    async def delete(self, collection: str, key: str) -> None:
        try:
            await self._remove(collection, key)
        except RedisError as e:
            logger.error(f"❌ Redis: ошибка удаления {collection}/{key}: {e}")
            raise PersistenceFailure(str(e), collection=collection, key=key) from e

    async def query(self, collection: str, filters: Optional[List[Filter]] = None,
                    order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        try:
            raws = await self._read_all(collection)
        except RedisError as e:
            logger.error(f"❌ Redis: ошибка запроса {collection}: {e}")
            raise PersistenceFailure(str(e), collection=collection) from e
        records = [self._decode(raw) for raw in raws if raw is not None]
        return apply_query(records, filters, order_by, descending)

    # ===== CHANGE FEED =====

    def _pattern(self) -> str:
        return f"{self.prefix}:changes:*"

    def subscribe(self, collection: str, key: str, on_change) -> SubscriptionHandle:
        handle = super().subscribe(collection, key, on_change)
        self._channels[self._channel(collection, key)] = (collection, key)
        # одно соединение pub/sub на хранилище, сколько бы документов ни слушали
        if self._listener is None or self._listener.done():
            loop = asyncio.get_running_loop()
            self._listener = loop.create_task(self._listen())
        return handle

    def _unsubscribe(self, handle: SubscriptionHandle) -> None:
        super()._unsubscribe(handle)
        if self.subscriber_count(handle.collection, handle.key) == 0:
            self._channels.pop(self._channel(handle.collection, handle.key), None)
        if not self._channels and self._listener is not None:
            self._listener.cancel()
            self._listener = None

    async def _listen(self) -> None:
        pubsub = self.client.pubsub()
        try:
            await pubsub.psubscribe(self._pattern())
            logger.info(f"📡 Redis: лента изменений {self._pattern()} подключена")
            async for message in pubsub.listen():
                if message.get("type") != "pmessage":
                    continue
                self._dispatch(message.get("channel"), message.get("data"))
        except RedisError as e:
            logger.error(f"❌ Redis: лента изменений прервана: {e}")
        finally:
            await pubsub.aclose()

    def _dispatch(self, channel: str, data: Any) -> None:
        target = self._channels.get(channel)
        if target is None:
            return
        try:
            record = json.loads(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"⚠️ Redis: некорректное сообщение в {channel}: {e}")
            return
        self._notify(target[0], target[1], record)

    async def close(self) -> None:
        await super().close()
        if self._listener is not None:
            self._listener.cancel()
            self._listener = None
        self._channels.clear()
        await self.client.aclose()
        logger.info("✅ Redis соединение закрыто")
