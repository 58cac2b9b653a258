#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Document Store Interface
Граница хранения: документы по коллекциям с подписками на изменения

Версия: 1.0.0
Дата: 2025-07-14
"""

import asyncio
import copy
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Callable, Tuple, NamedTuple
import logging

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
ChangeCallback = Callable[[Optional[Record]], None]
Filter = Tuple[str, str, Any]

# ===== COLLECTION PATHS =====

HABITS = "habits"
USERS = "users"


def day_schedules(owner_id: str) -> str:
    return f"{USERS}/{owner_id}/daySchedules"


def week_schedules(owner_id: str) -> str:
    return f"{USERS}/{owner_id}/weekSchedules"


def month_schedules(owner_id: str) -> str:
    return f"{USERS}/{owner_id}/monthSchedules"


class OwnerCollection(NamedTuple):
    """Коллекция с записями владельца (для внешнего удаления аккаунта)"""
    path: str
    filters: Optional[List[Filter]] = None


def owner_collections(owner_id: str) -> List[OwnerCollection]:
    """Все коллекции, содержащие записи владельца"""
    return [
        OwnerCollection(HABITS, [("ownerId", "==", owner_id)]),
        OwnerCollection(day_schedules(owner_id)),
        OwnerCollection(week_schedules(owner_id)),
        OwnerCollection(month_schedules(owner_id)),
        OwnerCollection(USERS, [("id", "==", owner_id)]),
    ]

# ===== HELPERS =====

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
}


def matches(record: Record, filters: Optional[List[Filter]]) -> bool:
    for field_name, op, value in filters or []:
        if op not in _OPERATORS:
            raise ValueError(f"Неподдерживаемый оператор фильтра: {op}")
        if not _OPERATORS[op](record.get(field_name), value):
            return False
    return True


def apply_query(records: List[Record], filters: Optional[List[Filter]] = None,
                order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
    result = [r for r in records if matches(r, filters)]
    if order_by:
        # записи без поля сортировки идут в конце
        present = [r for r in result if r.get(order_by) is not None]
        missing = [r for r in result if r.get(order_by) is None]
        present.sort(key=lambda r: r[order_by], reverse=descending)
        result = present + missing
    return result


def merge_documents(base: Record, patch: Record) -> Record:
    """Слияние по полям: вложенные словари сливаются, остальное заменяется"""
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_documents(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged

# ===== SUBSCRIPTIONS =====

class SubscriptionHandle:
    """Подписка на изменения одной записи"""

    def __init__(self, collection: str, key: str, on_change: ChangeCallback,
                 on_cancel: Optional[Callable[["SubscriptionHandle"], None]] = None):
        self.collection = collection
        self.key = key
        self.on_change = on_change
        self._on_cancel = on_cancel
        self.active = True

    def deliver(self, record: Optional[Record]) -> None:
        if self.active:
            self.on_change(record)

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_cancel:
            self._on_cancel(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "cancelled"
        return f"<SubscriptionHandle {self.collection}/{self.key} {state}>"


class DocumentStore(ABC):
    """Минимальный контракт хранилища документов"""

    def __init__(self):
        self._subscribers: Dict[Tuple[str, str], List[SubscriptionHandle]] = {}
        self._subscribers_lock = threading.RLock()

    @abstractmethod
    async def get(self, collection: str, key: str) -> Record:
        """Запись или NotFound"""
        pass

    @abstractmethod
    async def set(self, collection: str, key: str, record: Record, merge: bool = False) -> None:
        """merge=True - частичное обновление полей, иначе полная перезапись"""
        pass

    @abstractmethod
    async def delete(self, collection: str, key: str) -> None:
        pass

    @abstractmethod
    async def query(self, collection: str, filters: Optional[List[Filter]] = None,
                    order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        pass

    async def close(self) -> None:
        with self._subscribers_lock:
            handles = [h for hs in self._subscribers.values() for h in hs]
        for handle in handles:
            handle.cancel()

    # ===== CHANGE FEED =====

    def subscribe(self, collection: str, key: str, on_change: ChangeCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(collection, key, on_change, on_cancel=self._unsubscribe)
        with self._subscribers_lock:
            self._subscribers.setdefault((collection, key), []).append(handle)
        logger.debug(f"📡 Подписка на {collection}/{key}")
        return handle

    def _unsubscribe(self, handle: SubscriptionHandle) -> None:
        with self._subscribers_lock:
            handles = self._subscribers.get((handle.collection, handle.key), [])
            if handle in handles:
                handles.remove(handle)
            if not handles:
                self._subscribers.pop((handle.collection, handle.key), None)
        logger.debug(f"📴 Подписка отменена {handle.collection}/{handle.key}")

    def subscriber_count(self, collection: Optional[str] = None, key: Optional[str] = None) -> int:
        with self._subscribers_lock:
            return sum(
                len(handles) for (c, k), handles in self._subscribers.items()
                if (collection is None or c == collection) and (key is None or k == key)
            )

    def _notify(self, collection: str, key: str, record: Optional[Record]) -> None:
        """Доставка изменения подписчикам через event loop (порядок по ключу сохраняется)"""
        with self._subscribers_lock:
            handles = list(self._subscribers.get((collection, key), []))
        if not handles:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for handle in handles:
            payload = copy.deepcopy(record)
            if loop is not None and not loop.is_closed():
                loop.call_soon_threadsafe(handle.deliver, payload)
            else:
                handle.deliver(payload)


__all__ = [
    'DocumentStore', 'SubscriptionHandle', 'OwnerCollection', 'Record', 'Filter',
    'HABITS', 'USERS', 'day_schedules', 'week_schedules', 'month_schedules',
    'owner_collections', 'matches', 'apply_query', 'merge_documents',
]
