# services/schedule_service.py

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from core.aggregator import DayStatus, ScheduleAggregator
from core.calendar_policy import CalendarPolicy, NavigationResult, append_week_start_change
from core.errors import InvalidTransition
from core.models import PeriodKind, UserProfile
from core.priorities import ActionType, PriorityAction, requires_confirmation
from database.repositories import ProfileRepository, ScheduleRecord
from database.store import SubscriptionHandle
from utils.datetime_utils import now_in

logger = logging.getLogger(__name__)


@dataclass
class PeriodView:
    """Загруженный период вместе с производными признаками для отображения"""
    kind: PeriodKind
    key: str
    record: ScheduleRecord
    is_current: bool
    is_past: bool
    can_go_back: bool
    can_go_forward: bool
    can_import_unfinished: bool
    day_status: Dict[str, DayStatus] = field(default_factory=dict)
    days: Dict[str, ScheduleRecord] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "key": self.key,
            "record": self.record.to_dict(),
            "isCurrent": self.is_current,
            "isPast": self.is_past,
            "canGoBack": self.can_go_back,
            "canGoForward": self.can_go_forward,
            "canImportUnfinished": self.can_import_unfinished,
            "dayStatus": {iso: status.to_dict() for iso, status in self.day_status.items()},
            "days": {iso: record.to_dict() for iso, record in self.days.items()},
        }


class ScheduleService:
    """
    Сервис расписаний дня / недели / месяца

    Возможности:
    - Загрузка периода по дате (с созданием по умолчанию)
    - Изменение приоритетов с подтверждением для прошедших периодов
    - Навигация с границами от даты создания аккаунта до текущего периода
    - Импорт невыполненных и копирование предыдущего периода
    - Настройка первого дня недели
    """

    def __init__(self, aggregator: ScheduleAggregator, profiles: ProfileRepository,
                 clock: Optional[Callable[[], datetime]] = None,
                 default_timezone: Optional[str] = None):
        self.aggregator = aggregator
        self.profiles = profiles
        self.clock = clock or now_in
        self.default_timezone = default_timezone
        logger.info("✅ ScheduleService инициализирован")

    async def _context(self, owner_id: str):
        """Профиль владельца и его календарная политика"""
        profile = await self.profiles.get_or_create(owner_id, now=self.clock(), timezone=self.default_timezone)
        policy = CalendarPolicy.for_profile(profile, self.default_timezone)
        self.aggregator.set_policy(owner_id, policy)
        return profile, policy

    # ===== ЗАГРУЗКА =====

    async def current_date(self, owner_id: str) -> date:
        """Сегодняшний день в часовом поясе владельца"""
        _, policy = await self._context(owner_id)
        return policy.local_date(self.clock())

    async def load_period(self, kind: PeriodKind, anchor_date: date, owner_id: str) -> PeriodView:
        """Период, содержащий anchor_date"""
        profile, policy = await self._context(owner_id)
        now = self.clock()
        key = policy.period_key(kind, anchor_date)
        start = policy.parse_period_key(kind, key)

        record = await self.aggregator.load_or_create(kind, key, owner_id)

        view = PeriodView(
            kind=kind,
            key=key,
            record=record,
            is_current=policy.is_current_period(start, now, kind),
            is_past=policy.is_past_period(start, now, kind),
            can_go_back=policy.navigate(kind, key, -1, profile.created_at, now).accepted,
            can_go_forward=policy.navigate(kind, key, 1, profile.created_at, now).accepted,
            can_import_unfinished=policy.is_current_period(start, now, kind),
        )

        if kind is PeriodKind.MONTH:
            view.day_status = await self.aggregator.refresh_month_cache(owner_id, key)
        elif kind is PeriodKind.WEEK:
            view.days = await self.aggregator.load_week_days(owner_id, key)

        logger.info(f"📂 {owner_id}: открыт период {kind.value} {key}")
        return view

    # ===== ИЗМЕНЕНИЯ =====

    async def requires_confirmation(self, owner_id: str, kind: PeriodKind, period_key: str,
                                    action: ActionType) -> bool:
        _, policy = await self._context(owner_id)
        is_past = policy.is_past_period(policy.parse_period_key(kind, period_key), self.clock(), kind)
        return requires_confirmation(is_past, action)

    async def mutate_priorities(self, owner_id: str, kind: PeriodKind, period_key: str,
                                action: PriorityAction, confirmed: bool = False) -> ScheduleRecord:
        await self._context(owner_id)
        return await self.aggregator.mutate(owner_id, kind, period_key, action, self.clock(), confirmed)

    async def import_unfinished(self, owner_id: str, kind: PeriodKind, target_key: str) -> int:
        """Импорт невыполненных пунктов из предыдущего периода в текущий"""
        _, policy = await self._context(owner_id)
        source_key = policy.shift(kind, target_key, -1)
        return await self.aggregator.carry_over_unfinished(owner_id, kind, source_key, target_key, self.clock())

    async def copy_previous_period(self, owner_id: str, kind: PeriodKind, target_key: str) -> int:
        await self._context(owner_id)
        return await self.aggregator.copy_previous_period(owner_id, kind, target_key)

    async def patch_day_priorities(self, owner_id: str, day_key: str, items) -> Dict[str, DayStatus]:
        await self._context(owner_id)
        return await self.aggregator.patch_day_priorities(owner_id, day_key, items)

    # ===== НАВИГАЦИЯ =====

    async def navigate_period(self, owner_id: str, kind: PeriodKind, current_key: str,
                              direction: int) -> NavigationResult:
        profile, policy = await self._context(owner_id)
        result = policy.navigate(kind, current_key, direction, profile.created_at, self.clock())
        if not result.accepted:
            logger.info(f"⛔ {owner_id}: навигация {kind.value} {current_key} ({direction:+d}) отклонена: {result.reason}")
        return result

    async def navigation_bounds(self, owner_id: str, kind: PeriodKind) -> Dict[str, int]:
        profile, policy = await self._context(owner_id)
        now = self.clock()
        return {
            "min": policy.min_navigable_offset(profile.created_at, now, kind),
            "max": policy.max_navigable_offset(profile.created_at, now, kind),
        }

    # ===== НАСТРОЙКИ =====

    async def set_week_start(self, owner_id: str, index: int) -> UserProfile:
        """Новый первый день недели (0 = воскресенье), действует с сегодняшнего дня"""
        if not isinstance(index, int) or not 0 <= index <= 6:
            raise InvalidTransition(f"Индекс дня недели должен быть от 0 до 6: {index}")

        profile, policy = await self._context(owner_id)
        today = policy.local_date(self.clock())
        profile.week_start_changes = append_week_start_change(profile.week_start_changes, index, today)
        await self.profiles.update(owner_id, {
            "weekStartChanges": [c.to_dict() for c in profile.week_start_changes],
        })
        self.aggregator.set_policy(owner_id, CalendarPolicy.for_profile(profile, self.default_timezone))

        logger.info(f"🔧 {owner_id}: неделя начинается с {index} начиная с {today}")
        return profile

    # ===== МЕСЯЦ =====

    async def month_day_status(self, owner_id: str, month_key: str) -> Dict[str, DayStatus]:
        await self._context(owner_id)
        return await self.aggregator.refresh_month_cache(owner_id, month_key)

    def watch_period(self, owner_id: str, kind: PeriodKind, key: str,
                     on_change=None) -> List[SubscriptionHandle]:
        return self.aggregator.watch(owner_id, kind, key, on_change)


# ===== ГЛОБАЛЬНЫЙ ЭКЗЕМПЛЯР =====

_global_schedule_service: Optional[ScheduleService] = None

def get_schedule_service() -> Optional[ScheduleService]:
    """Получить глобальный экземпляр ScheduleService"""
    return _global_schedule_service

def initialize_schedule_service(aggregator: ScheduleAggregator, profiles: ProfileRepository,
                                **kwargs) -> ScheduleService:
    """Инициализировать глобальный ScheduleService"""
    global _global_schedule_service
    _global_schedule_service = ScheduleService(aggregator, profiles, **kwargs)
    return _global_schedule_service
