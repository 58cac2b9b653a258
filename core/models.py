#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Core Data Models
Модели привычек и расписаний (день / неделя / месяц) с сериализацией

Версия: 1.0.0
Дата: 2025-07-14
"""

import uuid
from datetime import datetime, date
from typing import Dict, List, Optional, Any, ClassVar
from dataclasses import dataclass, field
from enum import Enum
import logging

from core.errors import DecodeFailure, InvalidTransition

logger = logging.getLogger(__name__)

# ===== ENUMS =====

class MetricCategory(Enum):
    """Категории метрик привычки"""
    TIME = "time"
    QUANTITY = "quantity"
    COMPLETION = "completion"
    PERFORMANCE = "performance"
    CUSTOM = "custom"


class PeriodKind(Enum):
    """Типы периодов расписания"""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


# Предопределенные типы метрик по категориям
PREDEFINED_METRICS: Dict[MetricCategory, List[str]] = {
    MetricCategory.TIME: ["Minutes", "Hours", "Consistency Score"],
    MetricCategory.QUANTITY: [
        "Pages Read", "Entries Written", "Reps Done", "New Words Learned",
        "Projects Done", "Weight (lbs)", "Weight (kg)",
        "Distance (miles)", "Distance (km)",
    ],
    MetricCategory.COMPLETION: ["Completed (Yes/No)", "Steps Taken"],
    MetricCategory.PERFORMANCE: [
        "Calories Burned", "Calories Consumed", "Sleep (Hours)", "Poses Held (count)",
    ],
    MetricCategory.CUSTOM: [],
}

DEFAULT_PRIORITY_TITLE = "New Priority"

# ===== VALIDATION HELPERS =====

def validate_text(text: str, min_length: int = 1, max_length: int = 1000, field_name: str = "text") -> str:
    """Валидация текстовых полей"""
    if not isinstance(text, str):
        raise InvalidTransition(f"{field_name} должен быть строкой")

    text = text.strip()
    if len(text) < min_length:
        raise InvalidTransition(f"{field_name} должен содержать минимум {min_length} символов")

    if len(text) > max_length:
        raise InvalidTransition(f"{field_name} должен содержать максимум {max_length} символов")

    return text


def _new_id() -> str:
    return str(uuid.uuid4())


def _document_id(data: Any) -> Optional[str]:
    """id документа для сообщения об ошибке; data может оказаться не словарем"""
    return data.get("id") if isinstance(data, dict) else None


def _parse_day(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_moment(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _dump_moment(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None

# ===== HABITS =====

@dataclass(frozen=True)
class MetricType:
    """Тип метрики: предопределенный или пользовательский"""
    kind: str  # "predefined" | "custom"
    value: str

    def is_completion_metric(self) -> bool:
        return self.kind == "predefined" and "completed" in self.value.lower()

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.kind, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricType":
        kind = "predefined" if data.get("type") == "predefined" else "custom"
        return cls(kind=kind, value=str(data["value"]))

    @classmethod
    def completed(cls) -> "MetricType":
        return cls(kind="predefined", value="Completed (Yes/No)")


@dataclass
class DailyRecord:
    """Запись значения метрики за день"""
    date: date
    value: Optional[float] = None
    record_id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.record_id, "date": self.date.isoformat(), "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyRecord":
        value = data.get("value")
        return cls(
            date=_parse_day(data["date"]),
            value=float(value) if value is not None else None,
            record_id=data.get("id") or _new_id(),
        )


@dataclass
class Habit:
    """Привычка со стриками, бейджами и ежедневными записями"""
    habit_id: Optional[str]
    owner_id: str
    title: str
    description: str = ""
    goal: str = ""
    start_date: datetime = field(default_factory=datetime.now)
    metric_category: MetricCategory = MetricCategory.COMPLETION
    metric_type: MetricType = field(default_factory=MetricType.completed)
    is_completed_today: bool = False
    last_reset: Optional[date] = None
    current_streak: int = 0
    longest_streak: int = 0
    weekly_streak_badge: bool = False
    monthly_streak_badge: bool = False
    yearly_streak_badge: bool = False
    points: int = 0
    daily_records: List[DailyRecord] = field(default_factory=list)

    def __post_init__(self):
        """Валидация после создания объекта"""
        self.title = validate_text(self.title, min_length=1, max_length=200, field_name="title")
        if self.current_streak < 0:
            raise InvalidTransition("current_streak не может быть отрицательным")

    @property
    def badges(self) -> Dict[str, bool]:
        return {
            "weekly": self.weekly_streak_badge,
            "monthly": self.monthly_streak_badge,
            "yearly": self.yearly_streak_badge,
        }

    def record_for(self, day: date) -> Optional[DailyRecord]:
        """Запись за конкретный день (не более одной на день)"""
        for record in self.daily_records:
            if record.date == day:
                return record
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация в словарь документа"""
        return {
            "id": self.habit_id,
            "ownerId": self.owner_id,
            "title": self.title,
            "description": self.description,
            "goal": self.goal,
            "startDate": self.start_date.isoformat(),
            "metricCategory": self.metric_category.value,
            "metricType": self.metric_type.to_dict(),
            "isCompletedToday": self.is_completed_today,
            "lastReset": self.last_reset.isoformat() if self.last_reset else None,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "weeklyStreakBadge": self.weekly_streak_badge,
            "monthlyStreakBadge": self.monthly_streak_badge,
            "yearlyStreakBadge": self.yearly_streak_badge,
            "points": self.points,
            "dailyRecords": [r.to_dict() for r in self.daily_records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], habit_id: Optional[str] = None) -> "Habit":
        """Десериализация из словаря документа"""
        try:
            last_reset = data.get("lastReset")
            return cls(
                habit_id=habit_id or data.get("id"),
                owner_id=data["ownerId"],
                title=data["title"],
                description=data.get("description", ""),
                goal=data.get("goal", ""),
                start_date=_parse_moment(data.get("startDate")) or datetime.now(),
                metric_category=MetricCategory(data.get("metricCategory", MetricCategory.COMPLETION.value)),
                metric_type=MetricType.from_dict(data["metricType"]) if data.get("metricType") else MetricType.completed(),
                is_completed_today=bool(data.get("isCompletedToday", False)),
                last_reset=_parse_day(last_reset) if last_reset else None,
                current_streak=int(data.get("currentStreak", 0)),
                longest_streak=int(data.get("longestStreak", 0)),
                weekly_streak_badge=bool(data.get("weeklyStreakBadge", False)),
                monthly_streak_badge=bool(data.get("monthlyStreakBadge", False)),
                yearly_streak_badge=bool(data.get("yearlyStreakBadge", False)),
                points=int(data.get("points", 0)),
                daily_records=[DailyRecord.from_dict(r) for r in data.get("dailyRecords", [])],
            )
        except (KeyError, TypeError, ValueError, AttributeError, InvalidTransition) as e:
            raise DecodeFailure(f"Не удалось загрузить привычку: {e}", key=habit_id)

    @classmethod
    def create(cls, owner_id: str, title: str, description: str = "", goal: str = "",
               metric_category: MetricCategory = MetricCategory.COMPLETION,
               metric_type: Optional[MetricType] = None,
               start_date: Optional[datetime] = None) -> "Habit":
        """Создание новой привычки (id назначает хранилище)"""
        return cls(
            habit_id=None,
            owner_id=owner_id,
            title=title,
            description=description,
            goal=goal,
            start_date=start_date or datetime.now(),
            metric_category=metric_category,
            metric_type=metric_type or MetricType.completed(),
        )

# ===== PRIORITIES =====

@dataclass
class PriorityItem:
    """Приоритет дня / недели / месяца"""
    item_id: str
    title: str
    progress: float = 0.0
    is_completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item_id,
            "title": self.title,
            "progress": self.progress,
            "isCompleted": self.is_completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriorityItem":
        # старые документы могут не содержать progress / isCompleted
        return cls(
            item_id=str(data["id"]),
            title=str(data["title"]),
            progress=float(data.get("progress") or 0.0),
            is_completed=bool(data.get("isCompleted", False)),
        )

    @classmethod
    def create(cls, title: str = DEFAULT_PRIORITY_TITLE) -> "PriorityItem":
        title = validate_text(title, min_length=0, max_length=200, field_name="title")
        return cls(item_id=_new_id(), title=title)

    def fresh_copy(self, keep_completion: bool = False) -> "PriorityItem":
        """Копия с новым id (для переноса между периодами)"""
        return PriorityItem(
            item_id=_new_id(),
            title=self.title,
            progress=self.progress if keep_completion else 0.0,
            is_completed=self.is_completed if keep_completion else False,
        )


def dump_priorities(items: List[PriorityItem]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]


def load_priorities(raw: Optional[List[Dict[str, Any]]]) -> List[PriorityItem]:
    return [PriorityItem.from_dict(item) for item in (raw or [])]

# ===== SCHEDULES =====

@dataclass
class TimeBlock:
    """Временной блок дня"""
    block_id: str
    start: datetime
    end: datetime
    task: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.block_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "task": self.task,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeBlock":
        return cls(
            block_id=str(data["id"]),
            start=_parse_moment(data["start"]),
            end=_parse_moment(data["end"]),
            task=data.get("task", ""),
        )


@dataclass
class ToDoItem:
    """Пункт списка дел недели"""
    item_id: str
    title: str
    is_completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.item_id, "title": self.title, "isCompleted": self.is_completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToDoItem":
        return cls(item_id=str(data["id"]), title=str(data["title"]),
                   is_completed=bool(data.get("isCompleted", False)))


@dataclass
class DaySchedule:
    """Расписание дня. id = ISO дата"""
    schedule_id: str
    user_id: str
    date: date
    wake_up_time: Optional[datetime] = None
    sleep_time: Optional[datetime] = None
    priorities: List[PriorityItem] = field(default_factory=list)
    time_blocks: List[TimeBlock] = field(default_factory=list)

    kind: ClassVar[PeriodKind] = PeriodKind.DAY
    priority_field: ClassVar[str] = "priorities"

    @property
    def items(self) -> List[PriorityItem]:
        return self.priorities

    @items.setter
    def items(self, value: List[PriorityItem]) -> None:
        self.priorities = value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.schedule_id,
            "userId": self.user_id,
            "date": self.date.isoformat(),
            "wakeUpTime": _dump_moment(self.wake_up_time),
            "sleepTime": _dump_moment(self.sleep_time),
            "priorities": dump_priorities(self.priorities),
            "timeBlocks": [b.to_dict() for b in self.time_blocks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaySchedule":
        try:
            return cls(
                schedule_id=data["id"],
                user_id=data["userId"],
                date=_parse_day(data.get("date") or data["id"]),
                wake_up_time=_parse_moment(data.get("wakeUpTime")),
                sleep_time=_parse_moment(data.get("sleepTime")),
                priorities=load_priorities(data.get("priorities")),
                time_blocks=[TimeBlock.from_dict(b) for b in data.get("timeBlocks", [])],
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeFailure(f"Не удалось загрузить расписание дня: {e}", key=_document_id(data))


@dataclass
class WeekSchedule:
    """Расписание недели. id = ISO дата начала недели"""
    schedule_id: str
    user_id: str
    start_of_week: date
    weekly_priorities: List[PriorityItem] = field(default_factory=list)
    daily_intentions: Dict[str, str] = field(default_factory=dict)
    daily_todo_lists: Dict[str, List[ToDoItem]] = field(default_factory=dict)

    kind: ClassVar[PeriodKind] = PeriodKind.WEEK
    priority_field: ClassVar[str] = "weeklyPriorities"

    @property
    def items(self) -> List[PriorityItem]:
        return self.weekly_priorities

    @items.setter
    def items(self, value: List[PriorityItem]) -> None:
        self.weekly_priorities = value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.schedule_id,
            "userId": self.user_id,
            "startOfWeek": self.start_of_week.isoformat(),
            "weeklyPriorities": dump_priorities(self.weekly_priorities),
            "dailyIntentions": dict(self.daily_intentions),
            "dailyToDoLists": {
                day: [t.to_dict() for t in todos] for day, todos in self.daily_todo_lists.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeekSchedule":
        try:
            return cls(
                schedule_id=data["id"],
                user_id=data["userId"],
                start_of_week=_parse_day(data.get("startOfWeek") or data["id"]),
                weekly_priorities=load_priorities(data.get("weeklyPriorities")),
                daily_intentions=dict(data.get("dailyIntentions") or {}),
                daily_todo_lists={
                    day: [ToDoItem.from_dict(t) for t in todos]
                    for day, todos in (data.get("dailyToDoLists") or {}).items()
                },
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeFailure(f"Не удалось загрузить расписание недели: {e}", key=_document_id(data))


@dataclass
class MonthSchedule:
    """Расписание месяца. id = YYYY-MM. Кэши по дням производные."""
    schedule_id: str
    user_id: str
    year_month: str
    monthly_priorities: List[PriorityItem] = field(default_factory=list)
    day_completions: Dict[str, float] = field(default_factory=dict)
    daily_priorities_by_day: Dict[str, List[PriorityItem]] = field(default_factory=dict)

    kind: ClassVar[PeriodKind] = PeriodKind.MONTH
    priority_field: ClassVar[str] = "monthlyPriorities"

    @property
    def items(self) -> List[PriorityItem]:
        return self.monthly_priorities

    @items.setter
    def items(self, value: List[PriorityItem]) -> None:
        self.monthly_priorities = value

    def cache_fields(self) -> Dict[str, Any]:
        """Только производные поля (для частичной записи)"""
        return {
            "dayCompletions": dict(self.day_completions),
            "dailyPrioritiesByDay": {
                day: dump_priorities(items) for day, items in self.daily_priorities_by_day.items()
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.schedule_id,
            "userId": self.user_id,
            "yearMonth": self.year_month,
            "monthlyPriorities": dump_priorities(self.monthly_priorities),
        }
        data.update(self.cache_fields())
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonthSchedule":
        try:
            return cls(
                schedule_id=data["id"],
                user_id=data["userId"],
                year_month=data.get("yearMonth") or data["id"],
                monthly_priorities=load_priorities(data.get("monthlyPriorities")),
                day_completions={k: float(v) for k, v in (data.get("dayCompletions") or {}).items()},
                daily_priorities_by_day={
                    day: load_priorities(items)
                    for day, items in (data.get("dailyPrioritiesByDay") or {}).items()
                },
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeFailure(f"Не удалось загрузить расписание месяца: {e}", key=_document_id(data))


SCHEDULE_TYPES = {
    PeriodKind.DAY: DaySchedule,
    PeriodKind.WEEK: WeekSchedule,
    PeriodKind.MONTH: MonthSchedule,
}

# ===== USER PROFILE =====

@dataclass
class WeekStartChange:
    """Правило «неделя начинается с», действующее с даты"""
    effective: date
    index: int  # 0 = воскресенье ... 6 = суббота

    def __post_init__(self):
        if not 0 <= self.index <= 6:
            raise InvalidTransition("Индекс дня недели должен быть от 0 до 6")

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.effective.isoformat(), "index": self.index}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeekStartChange":
        return cls(effective=_parse_day(data["date"]), index=int(data["index"]))


@dataclass
class UserProfile:
    """Профиль владельца: дата создания аккаунта, очки, региональные настройки"""
    user_id: str
    created_at: datetime
    total_points: int = 0
    default_habits_created: bool = False
    week_start_changes: List[WeekStartChange] = field(default_factory=list)
    timezone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "createdAt": self.created_at.isoformat(),
            "totalPoints": self.total_points,
            "defaultHabitsCreated": self.default_habits_created,
            "weekStartChanges": [c.to_dict() for c in self.week_start_changes],
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        try:
            return cls(
                user_id=data["id"],
                created_at=_parse_moment(data["createdAt"]),
                total_points=int(data.get("totalPoints", 0)),
                default_habits_created=bool(data.get("defaultHabitsCreated", False)),
                week_start_changes=[WeekStartChange.from_dict(c) for c in data.get("weekStartChanges", [])],
                timezone=data.get("timezone"),
            )
        except (KeyError, TypeError, ValueError, AttributeError, InvalidTransition) as e:
            raise DecodeFailure(f"Не удалось загрузить профиль: {e}", key=_document_id(data))


__all__ = [
    'MetricCategory', 'PeriodKind', 'PREDEFINED_METRICS', 'DEFAULT_PRIORITY_TITLE',
    'validate_text', 'MetricType', 'DailyRecord', 'Habit',
    'PriorityItem', 'dump_priorities', 'load_priorities',
    'TimeBlock', 'ToDoItem', 'DaySchedule', 'WeekSchedule', 'MonthSchedule', 'SCHEDULE_TYPES',
    'WeekStartChange', 'UserProfile',
]
