from fastapi import APIRouter, HTTPException, Depends
from typing import List, Dict, Any
import logging

from core.models import Habit
from services.habit_service import HabitService
from shared.models import CountResponse, HabitCreate, HabitValueRequest, ToggleResponse
from ..dependencies import get_habit_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users/{owner_id}/habits", tags=["habits"])

async def _owned_habit(service: HabitService, owner_id: str, habit_id: str) -> Habit:
    habit = await service.get_habit(habit_id)
    if habit.owner_id != owner_id:
        raise HTTPException(status_code=404, detail="Привычка не найдена")
    return habit

@router.get("/", response_model=List[Dict[str, Any]])
async def list_habits(owner_id: str, service: HabitService = Depends(get_habit_service)):
    """
    Привычки пользователя, новые первыми
    """
    habits = await service.list_habits(owner_id)
    return [habit.to_dict() for habit in habits]

@router.post("/", response_model=Dict[str, Any], status_code=201)
async def create_habit(owner_id: str, payload: HabitCreate,
                       service: HabitService = Depends(get_habit_service)):
    """
    Создать привычку
    """
    habit = await service.add_habit(
        owner_id,
        payload.title,
        description=payload.description,
        goal=payload.goal,
        metric_category=payload.metric_category.value,
        metric_type=payload.metric_type.model_dump() if payload.metric_type else None,
        start_date=payload.start_date,
    )
    return habit.to_dict()

@router.post("/defaults", response_model=List[Dict[str, Any]])
async def create_default_habits(owner_id: str, service: HabitService = Depends(get_habit_service)):
    """
    Привычки по умолчанию (создаются один раз)
    """
    created = await service.setup_default_habits(owner_id)
    return [habit.to_dict() for habit in created]

@router.post("/reset", response_model=CountResponse)
async def reset_habits(owner_id: str, service: HabitService = Depends(get_habit_service)):
    """
    Ежедневный сброс флагов выполнения
    """
    return CountResponse(count=await service.daily_reset(owner_id))

@router.get("/{habit_id}", response_model=Dict[str, Any])
async def get_habit(owner_id: str, habit_id: str, service: HabitService = Depends(get_habit_service)):
    habit = await _owned_habit(service, owner_id, habit_id)
    return habit.to_dict()

@router.delete("/{habit_id}", status_code=204)
async def delete_habit(owner_id: str, habit_id: str, service: HabitService = Depends(get_habit_service)):
    await _owned_habit(service, owner_id, habit_id)
    await service.delete_habit(habit_id)

@router.post("/{habit_id}/toggle", response_model=ToggleResponse)
async def toggle_habit(owner_id: str, habit_id: str, service: HabitService = Depends(get_habit_service)):
    """
    Отметить / снять отметку выполнения за сегодня
    """
    await _owned_habit(service, owner_id, habit_id)
    outcome = await service.toggle_habit(habit_id)
    result = outcome["result"]
    return ToggleResponse(
        habit=outcome["habit"].to_dict(),
        completed=result.completed,
        awarded_points=result.awarded_points,
        bonus=result.bonus,
        new_badges=result.new_badges,
    )

@router.post("/{habit_id}/records", response_model=Dict[str, Any])
async def record_habit_value(owner_id: str, habit_id: str, payload: HabitValueRequest,
                             service: HabitService = Depends(get_habit_service)):
    """
    Записать значение метрики за день
    """
    await _owned_habit(service, owner_id, habit_id)
    habit = await service.record_habit_value(habit_id, payload.value, payload.day)
    return habit.to_dict()
