#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Calendar Policy
Границы периодов (день / неделя / месяц), идентичность дат и правила навигации

Все вычисления «сегодня», «текущий период», «прошедший период» выполняются
только здесь. Остальные компоненты обращаются к CalendarPolicy.

Версия: 1.0.0
Дата: 2025-07-14
"""

from datetime import datetime, date, timedelta
from typing import List, Optional, Iterable, NamedTuple
import logging

from core.errors import InvalidTransition
from core.models import PeriodKind, UserProfile, WeekStartChange
from utils.datetime_utils import get_timezone, to_local, local_midnight

logger = logging.getLogger(__name__)

# ===== CONSTANTS =====

SUNDAY = 0
WEEKDAY_SHORT_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

DAY_KEY_FORMAT = "%Y-%m-%d"
MONTH_KEY_FORMAT = "%Y-%m"


class NavigationResult(NamedTuple):
    """Результат навигации: новый ключ либо отказ с причиной"""
    accepted: bool
    key: str
    reason: Optional[str] = None


def sunday_index(day: date) -> int:
    """Индекс дня недели в нумерации 0 = воскресенье ... 6 = суббота"""
    return (day.weekday() + 1) % 7


def append_week_start_change(history: Iterable[WeekStartChange], index: int,
                             today: date) -> List[WeekStartChange]:
    """Новое правило начала недели, действующее с сегодняшнего дня.

    Уже созданные недели сохраняют свою идентичность: правило применяется
    с первого подходящего дня, начиная с недели, в которую попадает today.
    Повторная смена в тот же день заменяет правило этого дня.
    """
    change = WeekStartChange(effective=today, index=index)
    updated = [c for c in history if c.effective != today]
    updated.append(change)
    updated.sort(key=lambda c: c.effective)
    return updated


class CalendarPolicy:
    """Чистые функции календаря для одного пользователя.

    Параметры пользователя: часовой пояс (pytz) и история правил
    «неделя начинается с» (effective-dated).

    Новое правило вступает в силу с первого подходящего дня недели, начиная
    с начала недели, в которую попала дата смены. Поэтому неделя всегда
    длится 7 дней, а текущая неделя не исчезает при смене правила.
    """

    def __init__(self, timezone: Optional[str] = None,
                 week_start_changes: Optional[Iterable[WeekStartChange]] = None):
        self.tz = get_timezone(timezone)
        self.week_start_changes = sorted(week_start_changes or [], key=lambda c: c.effective)
        self._week_rules: List[WeekStartChange] = []
        for change in self.week_start_changes:
            self._add_week_rule(change)

    def _add_week_rule(self, change: WeekStartChange) -> None:
        current_start = self.start_of_week(change.effective)
        begins = current_start + timedelta(days=(change.index - sunday_index(current_start)) % 7)
        # правило, еще не вступившее в силу, заменяется более новым
        self._week_rules = [r for r in self._week_rules if r.effective < begins]
        self._week_rules.append(WeekStartChange(effective=begins, index=change.index))

    @classmethod
    def for_profile(cls, profile: UserProfile, default_timezone: Optional[str] = None) -> "CalendarPolicy":
        return cls(profile.timezone or default_timezone, profile.week_start_changes)

    # ===== DAY IDENTITY =====

    def local_date(self, moment: datetime) -> date:
        """Календарный день момента в часовом поясе пользователя"""
        return to_local(moment, self.tz).date()

    def start_of_day(self, moment: datetime) -> datetime:
        """Полночь дня, в котором находится момент"""
        return local_midnight(self.local_date(moment), self.tz)

    def is_today(self, day: date, now: datetime) -> bool:
        return day == self.local_date(now)

    # ===== PERIOD BOUNDARIES =====

    def week_start_index(self, day: date) -> int:
        """Первый день недели, действующий на дату (по умолчанию воскресенье)"""
        index = SUNDAY
        for change in self._week_rules:
            if change.effective <= day:
                index = change.index
            else:
                break
        return index

    def start_of_week(self, day: date) -> date:
        delta = (sunday_index(day) - self.week_start_index(day)) % 7
        return day - timedelta(days=delta)

    @staticmethod
    def start_of_month(day: date) -> date:
        return day.replace(day=1)

    def period_start(self, kind: PeriodKind, day: date) -> date:
        if kind is PeriodKind.DAY:
            return day
        if kind is PeriodKind.WEEK:
            return self.start_of_week(day)
        return self.start_of_month(day)

    def period_key(self, kind: PeriodKind, day: date) -> str:
        start = self.period_start(kind, day)
        if kind is PeriodKind.MONTH:
            return start.strftime(MONTH_KEY_FORMAT)
        return start.isoformat()

    def parse_period_key(self, kind: PeriodKind, key: str) -> date:
        """Дата начала периода по ключу. Некорректный ключ - InvalidTransition."""
        try:
            if kind is PeriodKind.MONTH:
                return datetime.strptime(key, MONTH_KEY_FORMAT).date()
            day = datetime.strptime(key, DAY_KEY_FORMAT).date()
        except (TypeError, ValueError):
            raise InvalidTransition(f"Некорректный ключ периода {kind.value}: {key!r}", key=key)

        if kind is PeriodKind.WEEK and self.start_of_week(day) != day:
            raise InvalidTransition(f"{key} не является началом недели", key=key)
        return day

    def days_of_period(self, kind: PeriodKind, key: str) -> List[date]:
        """Все дни периода по порядку. Неделя - всегда 7 дней от ключа."""
        start = self.parse_period_key(kind, key)
        if kind is PeriodKind.WEEK:
            return [start + timedelta(days=i) for i in range(7)]
        end = self.parse_period_key(kind, self.shift(kind, key, 1))
        return [start + timedelta(days=i) for i in range((end - start).days)]

    def weekday_names(self, week_start: date) -> List[str]:
        """Короткие имена дней недели, начиная с первого дня недели"""
        first = sunday_index(week_start)
        return [WEEKDAY_SHORT_NAMES[(first + i) % 7] for i in range(7)]

    # ===== SHIFTING =====

    def shift(self, kind: PeriodKind, key: str, direction: int) -> str:
        """Ключ соседнего периода (direction = -1 / +1)"""
        if direction not in (-1, 1):
            raise InvalidTransition(f"Недопустимое направление навигации: {direction}")

        start = self.parse_period_key(kind, key)

        if kind is PeriodKind.DAY:
            return (start + timedelta(days=direction)).isoformat()

        if kind is PeriodKind.MONTH:
            month_index = start.year * 12 + start.month - 1 + direction
            return date(month_index // 12, month_index % 12 + 1, 1).strftime(MONTH_KEY_FORMAT)

        # после смены правила последняя старая неделя перекрывается с первой
        # новой, поэтому шаг идет по началам недель, а не на 7 дней
        if direction < 0:
            return self.start_of_week(start - timedelta(days=1)).isoformat()

        day = start + timedelta(days=1)
        while self.start_of_week(day) <= start:
            day += timedelta(days=1)
        return self.start_of_week(day).isoformat()

    # ===== CURRENT / PAST =====

    def is_current_period(self, candidate: date, now: datetime, kind: PeriodKind) -> bool:
        """candidate - дата начала периода (ключа)"""
        today = self.local_date(now)
        return self.period_start(kind, candidate) == self.period_start(kind, today)

    def is_past_period(self, candidate: date, now: datetime, kind: PeriodKind = PeriodKind.DAY) -> bool:
        today = self.local_date(now)
        return candidate < self.period_start(kind, today)

    # ===== NAVIGATION BOUNDS =====

    def _period_distance(self, kind: PeriodKind, earlier: date, later: date) -> int:
        """Количество шагов навигации от периода earlier до периода later"""
        if kind is PeriodKind.DAY:
            return (later - earlier).days
        if kind is PeriodKind.MONTH:
            return (later.year - earlier.year) * 12 + later.month - earlier.month

        target = self.period_key(kind, earlier)
        key = self.period_key(kind, later)
        steps = 0
        while key > target:
            key = self.shift(kind, key, -1)
            steps += 1
        return steps

    def min_navigable_offset(self, account_created: datetime, now: datetime,
                             kind: PeriodKind) -> int:
        """Смещение (≤ 0) периода, содержащего дату создания аккаунта"""
        created = self.local_date(account_created)
        today = self.local_date(now)
        if created >= today:
            return 0
        return -self._period_distance(kind, created, today)

    def max_navigable_offset(self, account_created: Optional[datetime] = None,
                             now: Optional[datetime] = None,
                             kind: Optional[PeriodKind] = None) -> int:
        """Навигация в будущее за пределы текущего периода запрещена"""
        return 0

    def navigate(self, kind: PeriodKind, current_key: str, direction: int,
                 account_created: datetime, now: datetime) -> NavigationResult:
        """Переход к соседнему периоду с проверкой границ"""
        current_start = self.parse_period_key(kind, current_key)
        created_start = self.period_start(kind, self.local_date(account_created))
        now_start = self.period_start(kind, self.local_date(now))

        if direction < 0 and current_start <= created_start:
            logger.debug(f"⚠️ Навигация назад отклонена: {kind.value} {current_key}")
            return NavigationResult(False, current_key, "before_account_creation")

        if direction > 0 and current_start >= now_start:
            logger.debug(f"⚠️ Навигация вперед отклонена: {kind.value} {current_key}")
            return NavigationResult(False, current_key, "beyond_current_period")

        return NavigationResult(True, self.shift(kind, current_key, direction))


__all__ = [
    'CalendarPolicy', 'NavigationResult', 'append_week_start_change', 'sunday_index',
    'WEEKDAY_SHORT_NAMES', 'SUNDAY',
]
