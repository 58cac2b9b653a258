#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Schedule Aggregator
Загрузка/создание расписаний дня, недели и месяца и кэш статусов дней месяца

Запись дня - источник истины. Кэш месяца (dailyPrioritiesByDay,
dayCompletions) производный: перечитывается из записей дней при открытии
месяца и при изменении приоритетов дня, статус дней всегда пересчитывается
целиком.

Версия: 1.0.0
Дата: 2025-07-14
"""

import asyncio
import copy
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple, Any
from dataclasses import dataclass
import logging

from core.calendar_policy import CalendarPolicy
from core.errors import DecodeFailure, InvalidTransition, NotFound, PersistenceFailure
from core.models import (
    DaySchedule, MonthSchedule, PeriodKind, PriorityItem, WeekSchedule, dump_priorities,
)
from core.priorities import PriorityAction, PriorityList, import_unfinished, requires_confirmation
from core.time_blocks import copy_time_blocks, default_wake_sleep, generate_time_blocks, move_to_day
from database.repositories import ScheduleRecord, ScheduleRepository, decode_schedule
from database.store import SubscriptionHandle

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_READS = 30

RecordKey = Tuple[str, PeriodKind, str]
ChangeListener = Callable[[PeriodKind, str, Optional[ScheduleRecord]], None]


@dataclass(frozen=True)
class DayStatus:
    """Выполнено / всего приоритетов за день"""
    done: int
    total: int

    @property
    def ratio(self) -> float:
        return self.done / self.total if self.total else 0.0

    @property
    def fully_completed(self) -> bool:
        return self.total > 0 and self.done == self.total

    def to_dict(self) -> Dict[str, Any]:
        return {"done": self.done, "total": self.total}


def day_status(items: List[PriorityItem]) -> DayStatus:
    return DayStatus(done=sum(1 for item in items if item.is_completed), total=len(items))


def recompute_month_day_status(month: MonthSchedule) -> Dict[str, DayStatus]:
    """Статусы дней месяца, выведенные только из кэша dailyPrioritiesByDay"""
    return {iso: day_status(items) for iso, items in sorted(month.daily_priorities_by_day.items())}


class ScheduleAggregator:
    """Оркестратор расписаний владельцев.

    Владеет кэшем записей, кэшем статусов дней месяца и подписками видимых
    периодов. Другие компоненты читают эти кэши только через методы класса.
    """

    def __init__(self, repository: ScheduleRepository,
                 max_concurrent_reads: int = DEFAULT_MAX_CONCURRENT_READS):
        self.repository = repository
        self.max_concurrent_reads = max_concurrent_reads

        self._policies: Dict[str, CalendarPolicy] = {}
        self._records: Dict[RecordKey, ScheduleRecord] = {}
        self._day_status: Dict[Tuple[str, str], Dict[str, DayStatus]] = {}
        self._inflight: Dict[RecordKey, asyncio.Future] = {}
        self._subscriptions: Dict[Tuple[str, PeriodKind], List[SubscriptionHandle]] = {}

    # ===== POLICY & CACHE ACCESS =====

    def set_policy(self, owner_id: str, policy: CalendarPolicy) -> None:
        self._policies[owner_id] = policy

    def policy_for(self, owner_id: str) -> CalendarPolicy:
        return self._policies.setdefault(owner_id, CalendarPolicy())

    def cached(self, kind: PeriodKind, key: str, owner_id: str) -> Optional[ScheduleRecord]:
        return self._records.get((owner_id, kind, key))

    def month_status(self, owner_id: str, month_key: str) -> Optional[Dict[str, DayStatus]]:
        status = self._day_status.get((owner_id, month_key))
        return dict(status) if status is not None else None

    # ===== DEFAULTS =====

    def default_record(self, kind: PeriodKind, key: str, owner_id: str) -> ScheduleRecord:
        """Запись по умолчанию для еще не созданного периода"""
        policy = self.policy_for(owner_id)
        start = policy.parse_period_key(kind, key)

        if kind is PeriodKind.DAY:
            wake, sleep = default_wake_sleep(start, policy.tz)
            return DaySchedule(
                schedule_id=key,
                user_id=owner_id,
                date=start,
                wake_up_time=wake,
                sleep_time=sleep,
                time_blocks=generate_time_blocks(wake, sleep),
            )

        if kind is PeriodKind.WEEK:
            names = policy.weekday_names(start)
            return WeekSchedule(
                schedule_id=key,
                user_id=owner_id,
                start_of_week=start,
                daily_intentions={name: "" for name in names},
                daily_todo_lists={name: [] for name in names},
            )

        return MonthSchedule(schedule_id=key, user_id=owner_id, year_month=key)

    # ===== LOAD OR CREATE =====

    async def load_or_create(self, kind: PeriodKind, key: str, owner_id: str) -> ScheduleRecord:
        """Загрузка периода; отсутствующий период создается и сохраняется.

        Одновременные загрузки одного ключа в процессе объединяются: все
        вызывающие получают одну и ту же запись.
        """
        self.policy_for(owner_id).parse_period_key(kind, key)
        record_key = (owner_id, kind, key)

        task = self._inflight.get(record_key)
        if task is None:
            task = asyncio.ensure_future(self._load_or_create(kind, key, owner_id))
            self._inflight[record_key] = task

            def _done(finished, record_key=record_key):
                if self._inflight.get(record_key) is finished:
                    del self._inflight[record_key]

            task.add_done_callback(_done)

        return await asyncio.shield(task)

    async def _load_or_create(self, kind: PeriodKind, key: str, owner_id: str) -> ScheduleRecord:
        try:
            record = await self.repository.get(kind, owner_id, key)
            logger.debug(f"📂 Загружено расписание {kind.value} {key} ({owner_id})")
        except NotFound:
            record = self.default_record(kind, key, owner_id)
            await self.repository.save(record)
            logger.info(f"📄 Создано расписание {kind.value} {key} ({owner_id})")

        self._records[(owner_id, kind, key)] = record
        return record

    # ===== FAN-IN =====

    async def _fetch_days(self, owner_id: str, days: List[date]) -> List[Tuple[date, Optional[Dict[str, Any]]]]:
        """Параллельное чтение записей дней с ограничением конкурентности"""
        semaphore = asyncio.Semaphore(self.max_concurrent_reads)

        async def fetch(day: date):
            async with semaphore:
                try:
                    return day, await self.repository.fetch_raw(PeriodKind.DAY, owner_id, day.isoformat())
                except NotFound:
                    return day, None

        return list(await asyncio.gather(*(fetch(day) for day in days)))

    @staticmethod
    def _decode_days(raws: List[Tuple[date, Optional[Dict[str, Any]]]]) -> Dict[str, List[PriorityItem]]:
        by_day = {}
        for day, raw in raws:
            items: List[PriorityItem] = []
            if raw is not None:
                try:
                    items = DaySchedule.from_dict(raw).priorities
                except DecodeFailure as e:
                    logger.warning(f"⚠️ Поврежденная запись дня {day}: {e}")
            by_day[day.isoformat()] = items
        return by_day

    async def refresh_month_cache(self, owner_id: str, month_key: str) -> Dict[str, DayStatus]:
        """Перечитать записи всех дней месяца и переписать производные поля месяца"""
        policy = self.policy_for(owner_id)
        days = policy.days_of_period(PeriodKind.MONTH, month_key)

        raws = await self._fetch_days(owner_id, days)
        loop = asyncio.get_running_loop()
        by_day = await loop.run_in_executor(None, self._decode_days, raws)

        month = await self.load_or_create(PeriodKind.MONTH, month_key, owner_id)
        month.daily_priorities_by_day = by_day
        month.day_completions = {iso: day_status(items).ratio for iso, items in by_day.items()}
        await self.repository.patch(PeriodKind.MONTH, owner_id, month_key, month.cache_fields())

        status = recompute_month_day_status(month)
        self._day_status[(owner_id, month_key)] = status
        logger.info(f"🗓 Кэш месяца {month_key} обновлен ({owner_id}): дней {len(status)}")
        return dict(status)

    async def load_week_days(self, owner_id: str, week_key: str) -> Dict[str, DaySchedule]:
        """Записи всех семи дней недели (создаются при отсутствии)"""
        policy = self.policy_for(owner_id)
        days = policy.days_of_period(PeriodKind.WEEK, week_key)
        semaphore = asyncio.Semaphore(self.max_concurrent_reads)

        async def load(day: date):
            async with semaphore:
                return await self.load_or_create(PeriodKind.DAY, day.isoformat(), owner_id)

        records = await asyncio.gather(*(load(day) for day in days))
        return {record.schedule_id: record for record in records}

    # ===== DAY PATCH =====

    async def patch_day_priorities(self, owner_id: str, day_key: str,
                                   items: List[PriorityItem]) -> Dict[str, DayStatus]:
        """Частичная запись приоритетов дня и обновление кэша месяца для этого дня"""
        policy = self.policy_for(owner_id)
        day = policy.parse_period_key(PeriodKind.DAY, day_key)

        await self.repository.patch(PeriodKind.DAY, owner_id, day_key, {
            "id": day_key,
            "userId": owner_id,
            "date": day_key,
            "priorities": dump_priorities(items),
        })

        cached_day = self._records.get((owner_id, PeriodKind.DAY, day_key))
        if cached_day is not None and cached_day.priorities is not items:
            cached_day.priorities = list(items)

        month_key = policy.period_key(PeriodKind.MONTH, day)
        try:
            return await self._refresh_month_day(owner_id, month_key, day_key)
        except PersistenceFailure as e:
            # запись дня уже сохранена, кэш месяца догонит при следующем открытии
            logger.error(f"❌ Кэш месяца {month_key} не обновлен после изменения {day_key}: {e}")
            return self.month_status(owner_id, month_key) or {}

    async def _refresh_month_day(self, owner_id: str, month_key: str, day_key: str) -> Dict[str, DayStatus]:
        raw = await self.repository.fetch_raw(PeriodKind.DAY, owner_id, day_key)
        items = self._decode_days([(date.fromisoformat(day_key), raw)])[day_key]

        month = await self.load_or_create(PeriodKind.MONTH, month_key, owner_id)
        month.daily_priorities_by_day[day_key] = items
        month.day_completions[day_key] = day_status(items).ratio
        await self.repository.patch(PeriodKind.MONTH, owner_id, month_key, {
            "dayCompletions": {day_key: month.day_completions[day_key]},
            "dailyPrioritiesByDay": {day_key: dump_priorities(items)},
        })

        status = recompute_month_day_status(month)
        self._day_status[(owner_id, month_key)] = status
        return dict(status)

    async def _persist_items(self, owner_id: str, record: ScheduleRecord) -> None:
        if record.kind is PeriodKind.DAY:
            await self.patch_day_priorities(owner_id, record.schedule_id, record.items)
        else:
            await self.repository.patch(record.kind, owner_id, record.schedule_id, {
                record.priority_field: dump_priorities(record.items),
            })

    # ===== MUTATIONS =====

    def is_past(self, owner_id: str, kind: PeriodKind, key: str, now: datetime) -> bool:
        policy = self.policy_for(owner_id)
        return policy.is_past_period(policy.parse_period_key(kind, key), now, kind)

    async def mutate(self, owner_id: str, kind: PeriodKind, key: str, action: PriorityAction,
                     now: datetime, confirmed: bool = False) -> ScheduleRecord:
        """Изменение списка приоритетов периода.

        Прошедшие периоды требуют confirmed=True. При ошибке сохранения
        запись в кэше возвращается к состоянию до изменения.
        """
        if requires_confirmation(self.is_past(owner_id, kind, key, now), action.action) and not confirmed:
            raise InvalidTransition(
                f"Изменение прошедшего периода {kind.value} {key} требует подтверждения", key=key
            )

        record = await self.load_or_create(kind, key, owner_id)
        snapshot = copy.deepcopy(record.items)

        PriorityList(kind, record.items).apply(action)
        try:
            await self._persist_items(owner_id, record)
        except PersistenceFailure:
            record.items = snapshot
            logger.error(f"❌ Изменение {action.action.value} в {kind.value} {key} откатено")
            raise

        logger.info(f"✏️ {kind.value} {key}: {action.action.value} ({owner_id})")
        return record

    async def carry_over_unfinished(self, owner_id: str, kind: PeriodKind, source_key: str,
                                    target_key: str, now: datetime) -> int:
        """Перенос невыполненных пунктов из предыдущего периода в текущий"""
        policy = self.policy_for(owner_id)
        target_start = policy.parse_period_key(kind, target_key)
        policy.parse_period_key(kind, source_key)

        if not policy.is_current_period(target_start, now, kind):
            raise InvalidTransition(f"Импорт возможен только в текущий период, не в {target_key}", key=target_key)
        if policy.shift(kind, target_key, -1) != source_key:
            raise InvalidTransition(f"{source_key} не является предыдущим периодом для {target_key}", key=source_key)

        try:
            source = await self.repository.get(kind, owner_id, source_key)
        except NotFound:
            logger.info(f"📭 Нет записи {kind.value} {source_key} для импорта")
            return 0

        target = await self.load_or_create(kind, target_key, owner_id)
        snapshot = copy.deepcopy(target.items)
        imported = import_unfinished(source.items, target.items)
        if not imported:
            return 0

        try:
            await self._persist_items(owner_id, target)
        except PersistenceFailure:
            target.items = snapshot
            raise

        logger.info(f"📥 Импортировано {imported} пунктов {source_key} -> {target_key} ({owner_id})")
        return imported

    async def copy_previous_period(self, owner_id: str, kind: PeriodKind, target_key: str) -> int:
        """Заменить приоритеты периода копией предыдущего (новые id, статус сохраняется).

        Для дня копируется и расписание: подъем, отбой и временные блоки.
        """
        policy = self.policy_for(owner_id)
        source_key = policy.shift(kind, target_key, -1)

        try:
            source = await self.repository.get(kind, owner_id, source_key)
        except NotFound:
            logger.info(f"📭 Нет записи {kind.value} {source_key} для копирования")
            return 0

        target = await self.load_or_create(kind, target_key, owner_id)
        snapshot = copy.deepcopy(target)
        target.items = [item.fresh_copy(keep_completion=True) for item in source.items]
        if kind is PeriodKind.DAY:
            self._copy_timeline(source, target, policy)

        try:
            await self._persist_items(owner_id, target)
            if kind is PeriodKind.DAY:
                document = target.to_dict()
                await self.repository.patch(kind, owner_id, target_key, {
                    field: document[field] for field in ("wakeUpTime", "sleepTime", "timeBlocks")
                })
        except PersistenceFailure:
            target.__dict__.update(snapshot.__dict__)
            raise

        logger.info(f"📋 Скопировано {len(target.items)} пунктов {source_key} -> {target_key} ({owner_id})")
        return len(target.items)

    @staticmethod
    def _copy_timeline(source: DaySchedule, target: DaySchedule, policy: CalendarPolicy) -> None:
        target.wake_up_time = move_to_day(source.wake_up_time, source.date, target.date, policy.tz)
        target.sleep_time = move_to_day(source.sleep_time, source.date, target.date, policy.tz)
        target.time_blocks = copy_time_blocks(source.time_blocks, source.date, target.date, policy.tz)

    # ===== SUBSCRIPTIONS =====

    def watch(self, owner_id: str, kind: PeriodKind, key: str,
              on_change: Optional[ChangeListener] = None) -> List[SubscriptionHandle]:
        """Подписки на видимый период.

        Для месяца - документ месяца и документы всех его дней. Предыдущие
        подписки того же вида отменяются до создания новых.
        """
        self.unwatch(owner_id, kind)
        policy = self.policy_for(owner_id)
        policy.parse_period_key(kind, key)

        handles = [self.repository.subscribe(
            kind, owner_id, key, self._record_listener(owner_id, kind, key, on_change)
        )]

        if kind is PeriodKind.MONTH:
            for day in policy.days_of_period(PeriodKind.MONTH, key):
                handles.append(self.repository.subscribe(
                    PeriodKind.DAY, owner_id, day.isoformat(),
                    self._month_day_listener(owner_id, key, day.isoformat(), on_change),
                ))

        self._subscriptions[(owner_id, kind)] = handles
        logger.debug(f"📡 {owner_id}: подписок на {kind.value} {key}: {len(handles)}")
        return handles

    def unwatch(self, owner_id: str, kind: Optional[PeriodKind] = None) -> None:
        kinds = [kind] if kind is not None else list(PeriodKind)
        for each in kinds:
            for handle in self._subscriptions.pop((owner_id, each), []):
                handle.cancel()

    def active_subscriptions(self, owner_id: str, kind: Optional[PeriodKind] = None) -> int:
        return sum(
            sum(1 for h in handles if h.active)
            for (owner, each), handles in self._subscriptions.items()
            if owner == owner_id and (kind is None or each is kind)
        )

    def _decode_update(self, kind: PeriodKind, key: str,
                       data: Optional[Dict[str, Any]]) -> Optional[ScheduleRecord]:
        if data is None:
            return None
        try:
            return decode_schedule(kind, data)
        except DecodeFailure as e:
            logger.warning(f"⚠️ Пропущено поврежденное обновление {kind.value} {key}: {e}")
            return None

    def _record_listener(self, owner_id: str, kind: PeriodKind, key: str,
                         on_change: Optional[ChangeListener]):
        def listener(data: Optional[Dict[str, Any]]) -> None:
            record = self._decode_update(kind, key, data)
            if record is not None:
                self._records[(owner_id, kind, key)] = record
                if kind is PeriodKind.MONTH:
                    self._day_status[(owner_id, key)] = recompute_month_day_status(record)
            if on_change:
                on_change(kind, key, record)
        return listener

    def _month_day_listener(self, owner_id: str, month_key: str, day_key: str,
                            on_change: Optional[ChangeListener]):
        def listener(data: Optional[Dict[str, Any]]) -> None:
            record = self._decode_update(PeriodKind.DAY, day_key, data)
            items = record.priorities if record is not None else []
            month = self._records.get((owner_id, PeriodKind.MONTH, month_key))
            if month is not None:
                # обновления дней приходят в любом порядке: перезаписываем запись дня
                month.daily_priorities_by_day[day_key] = list(items)
                month.day_completions[day_key] = day_status(items).ratio
                self._day_status[(owner_id, month_key)] = recompute_month_day_status(month)
            if on_change:
                on_change(PeriodKind.DAY, day_key, record)
        return listener


__all__ = [
    'ScheduleAggregator', 'DayStatus', 'day_status', 'recompute_month_day_status',
    'DEFAULT_MAX_CONCURRENT_READS',
]
