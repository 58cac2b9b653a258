#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Repositories
Узкие интерфейсы доступа к привычкам, расписаниям и профилям

DecodeFailure логируется и трактуется как NotFound, ошибки бэкенда
превращаются в PersistenceFailure.

Версия: 1.0.0
Дата: 2025-07-14
"""

import functools
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
import logging

from core.errors import EngineError, NotFound, PersistenceFailure, DecodeFailure
from core.models import (
    Habit, PeriodKind, UserProfile, DaySchedule, WeekSchedule, MonthSchedule, SCHEDULE_TYPES,
)
from database.store import (
    DocumentStore, SubscriptionHandle, HABITS, USERS,
    day_schedules, week_schedules, month_schedules,
)

logger = logging.getLogger(__name__)

ScheduleRecord = Union[DaySchedule, WeekSchedule, MonthSchedule]

_SCHEDULE_COLLECTIONS = {
    PeriodKind.DAY: day_schedules,
    PeriodKind.WEEK: week_schedules,
    PeriodKind.MONTH: month_schedules,
}


def schedule_collection(kind: PeriodKind, owner_id: str) -> str:
    return _SCHEDULE_COLLECTIONS[kind](owner_id)


def decode_schedule(kind: PeriodKind, data: Dict[str, Any]) -> ScheduleRecord:
    return SCHEDULE_TYPES[kind].from_dict(data)


def persistence_guard(func):
    """Ошибки бэкенда -> PersistenceFailure, ошибки движка без изменений"""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except EngineError:
            raise
        except Exception as e:
            logger.error(f"❌ {func.__qualname__}: ошибка хранилища: {e}")
            raise PersistenceFailure(f"Ошибка хранилища: {e}") from e
    return wrapper

# ===== HABITS =====

class HabitRepository:
    """Привычки владельца в коллекции habits"""

    def __init__(self, store: DocumentStore):
        self.store = store

    def _decode(self, data: Dict[str, Any], habit_id: Optional[str] = None) -> Habit:
        try:
            return Habit.from_dict(data, habit_id=habit_id)
        except DecodeFailure as e:
            logger.warning(f"⚠️ Пропущена поврежденная привычка {habit_id or data.get('id')}: {e}")
            raise NotFound(HABITS, habit_id or str(data.get("id")))

    @persistence_guard
    async def list_for_owner(self, owner_id: str) -> List[Habit]:
        """Привычки владельца, новые первыми"""
        records = await self.store.query(
            HABITS, [("ownerId", "==", owner_id)], order_by="startDate", descending=True
        )
        habits = []
        for data in records:
            try:
                habits.append(self._decode(data))
            except NotFound:
                continue
        return habits

    @persistence_guard
    async def get(self, habit_id: str) -> Habit:
        data = await self.store.get(HABITS, habit_id)
        return self._decode(data, habit_id=habit_id)

    @persistence_guard
    async def add(self, habit: Habit) -> Habit:
        if not habit.habit_id:
            habit.habit_id = str(uuid.uuid4())
        await self.store.set(HABITS, habit.habit_id, habit.to_dict())
        logger.info(f"➕ Привычка {habit.habit_id} добавлена для {habit.owner_id}")
        return habit

    @persistence_guard
    async def save(self, habit: Habit) -> None:
        await self.store.set(HABITS, habit.habit_id, habit.to_dict())

    @persistence_guard
    async def delete(self, habit_id: str) -> None:
        await self.store.delete(HABITS, habit_id)
        logger.info(f"🗑 Привычка {habit_id} удалена")

# ===== SCHEDULES =====

class ScheduleRepository:
    """Расписания дня / недели / месяца в коллекциях владельца"""

    def __init__(self, store: DocumentStore):
        self.store = store

    @persistence_guard
    async def fetch_raw(self, kind: PeriodKind, owner_id: str, key: str) -> Dict[str, Any]:
        return await self.store.get(schedule_collection(kind, owner_id), key)

    async def get(self, kind: PeriodKind, owner_id: str, key: str) -> ScheduleRecord:
        data = await self.fetch_raw(kind, owner_id, key)
        try:
            return decode_schedule(kind, data)
        except DecodeFailure as e:
            logger.warning(f"⚠️ Поврежденное расписание {kind.value}/{key}, используем по умолчанию: {e}")
            raise NotFound(schedule_collection(kind, owner_id), key)

    @persistence_guard
    async def save(self, record: ScheduleRecord) -> None:
        await self.store.set(
            schedule_collection(record.kind, record.user_id), record.schedule_id, record.to_dict()
        )

    @persistence_guard
    async def patch(self, kind: PeriodKind, owner_id: str, key: str, fields: Dict[str, Any]) -> None:
        """Частичная запись: остальные поля документа не затрагиваются"""
        await self.store.set(schedule_collection(kind, owner_id), key, fields, merge=True)

    def subscribe(self, kind: PeriodKind, owner_id: str, key: str, on_change) -> SubscriptionHandle:
        return self.store.subscribe(schedule_collection(kind, owner_id), key, on_change)

# ===== PROFILES =====

class ProfileRepository:
    """Документ users/{uid}: дата создания, очки, настройки недели"""

    def __init__(self, store: DocumentStore):
        self.store = store

    @persistence_guard
    async def get(self, owner_id: str) -> UserProfile:
        data = await self.store.get(USERS, owner_id)
        try:
            return UserProfile.from_dict(data)
        except DecodeFailure as e:
            logger.warning(f"⚠️ Поврежденный профиль {owner_id}: {e}")
            raise NotFound(USERS, owner_id)

    async def get_or_create(self, owner_id: str, now: Optional[datetime] = None,
                            timezone: Optional[str] = None) -> UserProfile:
        try:
            return await self.get(owner_id)
        except NotFound:
            profile = UserProfile(user_id=owner_id, created_at=now or datetime.now(), timezone=timezone)
            await self.save(profile)
            logger.info(f"👤 Создан профиль {owner_id}")
            return profile

    @persistence_guard
    async def save(self, profile: UserProfile) -> None:
        await self.store.set(USERS, profile.user_id, profile.to_dict())

    @persistence_guard
    async def update(self, owner_id: str, fields: Dict[str, Any]) -> None:
        await self.store.set(USERS, owner_id, fields, merge=True)

    @persistence_guard
    async def list_owner_ids(self) -> List[str]:
        return [data["id"] for data in await self.store.query(USERS) if data.get("id")]

    async def add_points(self, owner_id: str, points: int) -> int:
        """Начисление очков владельцу (totalPoints += points)"""
        profile = await self.get(owner_id)
        profile.total_points += points
        await self.update(owner_id, {"totalPoints": profile.total_points})
        logger.info(f"🏆 {owner_id}: +{points} очков (всего {profile.total_points})")
        return profile.total_points


__all__ = [
    'HabitRepository', 'ScheduleRepository', 'ProfileRepository',
    'ScheduleRecord', 'schedule_collection', 'decode_schedule', 'persistence_guard',
]
