# services/habit_service.py

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from core.calendar_policy import CalendarPolicy
from core.errors import EngineError, InvalidTransition
from core.models import Habit, MetricCategory, MetricType
from core.streaks import StreakEngine, ToggleResult
from database.repositories import HabitRepository, ProfileRepository
from utils.datetime_utils import now_in

logger = logging.getLogger(__name__)

# ===== КОНСТАНТЫ =====

DEFAULT_HABITS = [
    {"title": "Meditation", "description": "Spend 10 minutes meditating"},
    {"title": "Exercise", "description": "Do some physical activity"},
    {"title": "Journaling", "description": "Write down your thoughts"},
]


class HabitService:
    """
    Сервис привычек владельца

    Возможности:
    - Список, создание и удаление привычек
    - Переключение выполнения за сегодня со стриками и очками
    - Ежедневный сброс флага выполнения
    - Привычки по умолчанию для нового пользователя
    - Значения метрик по дням
    """

    def __init__(self, habits: HabitRepository, profiles: ProfileRepository,
                 engine: Optional[StreakEngine] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 default_timezone: Optional[str] = None):
        self.habits = habits
        self.profiles = profiles
        self.engine = engine or StreakEngine()
        self.clock = clock or now_in
        self.default_timezone = default_timezone
        logger.info("✅ HabitService инициализирован")

    async def _profile_and_policy(self, owner_id: str):
        profile = await self.profiles.get_or_create(owner_id, now=self.clock(), timezone=self.default_timezone)
        return profile, CalendarPolicy.for_profile(profile, self.default_timezone)

    # ===== CRUD =====

    async def list_habits(self, owner_id: str) -> List[Habit]:
        """Привычки владельца, новые первыми (с ленивым ежедневным сбросом)"""
        habits = await self.habits.list_for_owner(owner_id)
        await self._reset_stale(owner_id, habits)
        logger.debug(f"📋 {owner_id}: привычек {len(habits)}")
        return habits

    async def _reset_stale(self, owner_id: str, habits: List[Habit]) -> List[Habit]:
        _, policy = await self._profile_and_policy(owner_id)
        today = policy.local_date(self.clock())

        changed = self.engine.daily_reset_if_needed(habits, today)
        for habit in changed:
            await self.habits.save(habit)
        return changed

    async def get_habit(self, habit_id: str) -> Habit:
        return await self.habits.get(habit_id)

    async def add_habit(self, owner_id: str, title: str, **kwargs) -> Habit:
        """Создать новую привычку"""
        try:
            metric_type = kwargs.get("metric_type")
            if isinstance(metric_type, dict):
                metric_type = MetricType.from_dict(metric_type)

            category = kwargs.get("metric_category", MetricCategory.COMPLETION)
            if isinstance(category, str):
                category = MetricCategory(category)

            habit = Habit.create(
                owner_id=owner_id,
                title=title,
                description=kwargs.get("description", ""),
                goal=kwargs.get("goal", ""),
                metric_category=category,
                metric_type=metric_type,
                start_date=kwargs.get("start_date") or self.clock(),
            )
            return await self.habits.add(habit)

        except ValueError as e:
            logger.error(f"❌ Некорректные параметры привычки для {owner_id}: {e}")
            raise InvalidTransition(f"Некорректные параметры привычки: {e}")

    async def delete_habit(self, habit_id: str) -> None:
        await self.habits.delete(habit_id)
        self.engine.forget(habit_id)

    # ===== ВЫПОЛНЕНИЕ =====

    async def toggle_habit(self, habit_id: str) -> Dict[str, Any]:
        """Переключить выполнение привычки за сегодня"""
        if not habit_id:
            raise InvalidTransition("Нельзя отметить привычку без идентификатора")

        habit = await self.habits.get(habit_id)
        _, policy = await self._profile_and_policy(habit.owner_id)

        result = await self.engine.toggle(habit, self.clock(), self.habits.save, policy=policy)

        if result.completed and result.awarded_points:
            await self._award_points(habit.owner_id, result)

        return {"habit": habit, "result": result}

    async def _award_points(self, owner_id: str, result: ToggleResult) -> None:
        # ошибка начисления не откатывает отметку привычки
        try:
            await self.profiles.add_points(owner_id, result.awarded_points)
        except EngineError as e:
            logger.error(f"❌ Не удалось начислить {result.awarded_points} очков {owner_id}: {e}")

    async def daily_reset(self, owner_id: str) -> int:
        """Ежедневный сброс флага выполнения (идемпотентно)"""
        habits = await self.habits.list_for_owner(owner_id)
        changed = await self._reset_stale(owner_id, habits)
        return len(changed)

    async def record_habit_value(self, habit_id: str, value: Optional[float],
                                 day: Optional[date] = None) -> Habit:
        """Записать значение метрики привычки за день (по умолчанию сегодня)"""
        habit = await self.habits.get(habit_id)
        if day is None:
            _, policy = await self._profile_and_policy(habit.owner_id)
            day = policy.local_date(self.clock())

        self.engine.record_value(habit, day, value)
        await self.habits.save(habit)
        logger.info(f"📈 Привычка {habit_id}: значение {value} за {day}")
        return habit

    # ===== ПРИВЫЧКИ ПО УМОЛЧАНИЮ =====

    async def setup_default_habits(self, owner_id: str) -> List[Habit]:
        """Создать привычки по умолчанию, если это еще не сделано"""
        profile, _ = await self._profile_and_policy(owner_id)
        if profile.default_habits_created:
            return []

        logger.info(f"🌱 Создание привычек по умолчанию для {owner_id}...")
        created = [await self.add_habit(owner_id, **preset) for preset in DEFAULT_HABITS]

        await self.profiles.update(owner_id, {"defaultHabitsCreated": True})
        return created


# ===== ГЛОБАЛЬНЫЙ ЭКЗЕМПЛЯР =====

_global_habit_service: Optional[HabitService] = None

def get_habit_service() -> Optional[HabitService]:
    """Получить глобальный экземпляр HabitService"""
    return _global_habit_service

def initialize_habit_service(habits: HabitRepository, profiles: ProfileRepository, **kwargs) -> HabitService:
    """Инициализировать глобальный HabitService"""
    global _global_habit_service
    _global_habit_service = HabitService(habits, profiles, **kwargs)
    return _global_habit_service
