from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any
from datetime import date, datetime
from enum import Enum

# Базовые перечисления
class PeriodKindModel(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

class MetricCategoryModel(str, Enum):
    TIME = "time"
    QUANTITY = "quantity"
    COMPLETION = "completion"
    PERFORMANCE = "performance"
    CUSTOM = "custom"

class ActionTypeModel(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    REORDER = "reorder"
    TOGGLE = "toggle"
    RENAME = "rename"

# Модели привычек
class MetricTypeModel(BaseModel):
    type: str = Field("predefined", pattern="^(predefined|custom)$")
    value: str = Field(..., min_length=1, max_length=100)

class HabitCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=1000)
    description: str = Field("", max_length=1000)
    goal: str = Field("", max_length=1000)
    metric_category: MetricCategoryModel = MetricCategoryModel.COMPLETION
    metric_type: Optional[MetricTypeModel] = None
    start_date: Optional[datetime] = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError('Название привычки не может быть пустым')
        return v.strip()

class HabitValueRequest(BaseModel):
    value: Optional[float] = None
    day: Optional[date] = None

class ToggleResponse(BaseModel):
    habit: Dict[str, Any]
    completed: bool
    awarded_points: int = 0
    bonus: int = 0
    new_badges: List[str] = []

# Модели расписаний
class PriorityItemModel(BaseModel):
    id: str
    title: str = Field(..., max_length=200)
    progress: float = Field(0.0, ge=0.0, le=1.0)
    isCompleted: bool = False

class PriorityActionRequest(BaseModel):
    action: ActionTypeModel
    item_id: Optional[str] = None
    title: Optional[str] = Field(None, max_length=200)
    from_indices: List[int] = []
    to_index: Optional[int] = Field(None, ge=0)
    confirmed: bool = False

    def to_document(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "itemId": self.item_id,
            "title": self.title,
            "fromIndices": self.from_indices,
            "toIndex": self.to_index,
        }

class DayPrioritiesRequest(BaseModel):
    priorities: List[PriorityItemModel]

class NavigationRequest(BaseModel):
    key: str
    direction: int

    @field_validator('direction')
    @classmethod
    def validate_direction(cls, v):
        if v not in (-1, 1):
            raise ValueError('Направление навигации должно быть -1 или 1')
        return v

class NavigationResponse(BaseModel):
    accepted: bool
    key: str
    reason: Optional[str] = None

class WeekStartRequest(BaseModel):
    index: int = Field(..., ge=0, le=6)

class CountResponse(BaseModel):
    count: int

# Системные модели
class HealthCheck(BaseModel):
    status: str
    service: str
    version: str
    timestamp: float
    uptime: Optional[float] = None
    details: Optional[Dict[str, Any]] = None

class ErrorResponse(BaseModel):
    detail: str
    error: str
    retryable: bool = False
