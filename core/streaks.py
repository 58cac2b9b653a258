#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Streak Engine
Машина состояний выполнения привычки: стрики, бейджи, очки

Переходы (toggle за «сегодня»):
- отметка: стрик +1, если lastReset не сегодня; longest = max(longest, current)
- снятие отметки: стрик -1 (не ниже 0), longest откатывается, если
  именно эта отметка держала рекорд; lastReset очищается
- ежедневный сброс снимает только флаг isCompletedToday, стрик не трогает

Версия: 1.0.0
Дата: 2025-07-14
"""

import copy
import threading
from datetime import date, datetime
from typing import Dict, List, Optional, Callable, Awaitable, NamedTuple
from dataclasses import dataclass, field
import logging

from core.calendar_policy import CalendarPolicy
from core.errors import InvalidTransition, PersistenceFailure, EngineError
from core.models import Habit, DailyRecord

logger = logging.getLogger(__name__)

# ===== POINTS & BADGES =====

DAILY_COMPLETION_POINT = 1

# порог стрика -> (бонус, поле бейджа)
STREAK_MILESTONES = {
    7: (10, "weekly_streak_badge"),
    30: (50, "monthly_streak_badge"),
    365: (100, "yearly_streak_badge"),
}


def points_for_streak(streak: int) -> int:
    """Очки за переход в «выполнено»: 1 + стрик (+ бонус на пороге)"""
    return DAILY_COMPLETION_POINT + streak + milestone_bonus(streak)


def milestone_bonus(streak: int) -> int:
    bonus, _ = STREAK_MILESTONES.get(streak, (0, None))
    return bonus


class StreakState(NamedTuple):
    """Снимок стрика в локальном кэше движка"""
    current: int
    longest: int
    completed_today: bool
    last_reset: Optional[date]


@dataclass
class ToggleResult:
    """Итог переключения выполнения привычки"""
    habit_id: str
    completed: bool
    awarded_points: int = 0
    bonus: int = 0
    new_badges: List[str] = field(default_factory=list)


# ===== STREAK ENGINE =====

class StreakEngine:
    """Стрики привычек с оптимистичным локальным кэшем.

    Кэш принадлежит движку и меняется только через toggle / daily_reset_if_needed.
    При ошибке сохранения привычка и кэш возвращаются к снимку до операции.
    """

    def __init__(self, policy: Optional[CalendarPolicy] = None):
        self.policy = policy or CalendarPolicy()
        self._cache: Dict[str, StreakState] = {}
        self._lock = threading.RLock()

    # ===== CACHE =====

    def cached(self, habit_id: str) -> Optional[StreakState]:
        with self._lock:
            return self._cache.get(habit_id)

    def _remember(self, habit: Habit) -> None:
        if not habit.habit_id:
            return
        with self._lock:
            self._cache[habit.habit_id] = StreakState(
                habit.current_streak, habit.longest_streak,
                habit.is_completed_today, habit.last_reset,
            )

    def _restore_cache(self, habit_id: str, state: Optional[StreakState]) -> None:
        with self._lock:
            if state is None:
                self._cache.pop(habit_id, None)
            else:
                self._cache[habit_id] = state

    def forget(self, habit_id: str) -> None:
        with self._lock:
            self._cache.pop(habit_id, None)

    # ===== PURE TRANSITIONS =====

    @staticmethod
    def mark_done(habit: Habit, today: date) -> ToggleResult:
        if habit.is_completed_today:
            raise InvalidTransition("Привычка уже отмечена сегодня", key=habit.habit_id)

        if habit.last_reset != today:
            habit.current_streak += 1
            habit.last_reset = today
        habit.longest_streak = max(habit.longest_streak, habit.current_streak)
        habit.is_completed_today = True

        if habit.record_for(today) is None:
            value = 1.0 if habit.metric_type.is_completion_metric() else None
            habit.daily_records.append(DailyRecord(date=today, value=value))

        result = ToggleResult(habit_id=habit.habit_id, completed=True)
        result.bonus = milestone_bonus(habit.current_streak)
        result.awarded_points = points_for_streak(habit.current_streak)
        habit.points += result.awarded_points

        for threshold, (_, badge) in STREAK_MILESTONES.items():
            if habit.current_streak >= threshold and not getattr(habit, badge):
                setattr(habit, badge, True)
                result.new_badges.append(badge)

        return result

    @staticmethod
    def unmark(habit: Habit, today: date) -> ToggleResult:
        if not habit.is_completed_today:
            raise InvalidTransition("Привычка не отмечена сегодня", key=habit.habit_id)

        held_record = habit.current_streak == habit.longest_streak
        habit.current_streak = max(habit.current_streak - 1, 0)
        if held_record:
            habit.longest_streak = habit.current_streak
        habit.last_reset = None
        habit.is_completed_today = False

        record = habit.record_for(today)
        if record is not None and (record.value is None or habit.metric_type.is_completion_metric()):
            habit.daily_records.remove(record)

        return ToggleResult(habit_id=habit.habit_id, completed=False)

    def apply_toggle(self, habit: Habit, today: date) -> ToggleResult:
        """Переход без сохранения (чистая функция над объектом привычки)"""
        if habit.is_completed_today:
            return self.unmark(habit, today)
        return self.mark_done(habit, today)

    @staticmethod
    def record_value(habit: Habit, day: date, value: Optional[float]) -> DailyRecord:
        """Значение метрики за день (одна запись на день)"""
        record = habit.record_for(day)
        if record is None:
            record = DailyRecord(date=day, value=value)
            habit.daily_records.append(record)
            habit.daily_records.sort(key=lambda r: r.date)
        else:
            record.value = value
        return record

    # ===== OPERATIONS =====

    async def toggle(self, habit: Habit, now: datetime,
                     persist: Callable[[Habit], Awaitable[None]],
                     policy: Optional[CalendarPolicy] = None) -> ToggleResult:
        """Оптимистичное переключение: сначала локально, затем сохранение.

        При ошибке сохранения состояние откатывается и поднимается
        PersistenceFailure.
        """
        if not habit.habit_id:
            raise InvalidTransition("Нельзя отметить привычку без идентификатора")

        today = (policy or self.policy).local_date(now)
        snapshot = copy.deepcopy(habit)
        previous_state = self.cached(habit.habit_id)

        # флаг прошлого дня, если ежедневный сброс не отработал
        self.daily_reset_if_needed([habit], today)
        result = self.apply_toggle(habit, today)
        self._remember(habit)

        try:
            await persist(habit)
        except Exception as e:
            habit.__dict__.update(snapshot.__dict__)
            self._restore_cache(habit.habit_id, previous_state)
            logger.error(f"❌ Не удалось сохранить привычку {habit.habit_id}, состояние откатено: {e}")
            if isinstance(e, EngineError):
                raise
            raise PersistenceFailure(str(e), collection="habits", key=habit.habit_id) from e

        logger.info(
            f"✅ Привычка {habit.habit_id}: {'выполнена' if result.completed else 'отметка снята'}, "
            f"стрик {habit.current_streak}/{habit.longest_streak}"
        )
        return result

    def daily_reset_if_needed(self, habits: List[Habit], today: date) -> List[Habit]:
        """Снять флаг выполнения у привычек, чей lastReset не сегодня.

        Возвращает измененные привычки. Повторный вызов в тот же день ничего
        не меняет.
        """
        changed = []
        for habit in habits:
            if habit.last_reset != today and habit.is_completed_today:
                habit.is_completed_today = False
                self._remember(habit)
                changed.append(habit)

        if changed:
            logger.info(f"🔄 Ежедневный сброс: обновлено привычек {len(changed)}")
        return changed


__all__ = [
    'StreakEngine', 'StreakState', 'ToggleResult', 'STREAK_MILESTONES',
    'points_for_streak', 'milestone_bonus',
]
