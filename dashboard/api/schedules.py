from fastapi import APIRouter, Depends, Query
from typing import Dict, Any, Optional
from datetime import date
import logging

from core.models import PriorityItem
from core.priorities import ActionType, PriorityAction
from services.schedule_service import ScheduleService
from shared.models import (
    ActionTypeModel, CountResponse, DayPrioritiesRequest, NavigationRequest, NavigationResponse,
    PeriodKindModel, PriorityActionRequest, WeekStartRequest,
)
from ..dependencies import get_schedule_service, to_period_kind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users/{owner_id}", tags=["schedules"])

# ===== ЗАГРУЗКА И НАВИГАЦИЯ =====

@router.get("/schedules/{kind}/bounds", response_model=Dict[str, int])
async def navigation_bounds(owner_id: str, kind: PeriodKindModel,
                            service: ScheduleService = Depends(get_schedule_service)):
    """
    Допустимые смещения навигации относительно текущего периода
    """
    return await service.navigation_bounds(owner_id, to_period_kind(kind))

@router.post("/schedules/{kind}/navigate", response_model=NavigationResponse)
async def navigate(owner_id: str, kind: PeriodKindModel, payload: NavigationRequest,
                   service: ScheduleService = Depends(get_schedule_service)):
    """
    Переход к соседнему периоду. Отказ возвращается с причиной, а не ошибкой.
    """
    result = await service.navigate_period(owner_id, to_period_kind(kind), payload.key, payload.direction)
    return NavigationResponse(accepted=result.accepted, key=result.key, reason=result.reason)

@router.get("/schedules/{kind}", response_model=Dict[str, Any])
async def load_period(owner_id: str, kind: PeriodKindModel,
                      anchor: Optional[date] = Query(None),
                      service: ScheduleService = Depends(get_schedule_service)):
    """
    Период, содержащий дату anchor (по умолчанию сегодня)
    """
    anchor = anchor or await service.current_date(owner_id)
    view = await service.load_period(to_period_kind(kind), anchor, owner_id)
    return view.to_dict()

# ===== ПРИОРИТЕТЫ =====

@router.get("/schedules/{kind}/{key}/confirmation", response_model=Dict[str, bool])
async def confirmation_required(owner_id: str, kind: PeriodKindModel, key: str,
                                action: ActionTypeModel = Query(...),
                                service: ScheduleService = Depends(get_schedule_service)):
    required = await service.requires_confirmation(
        owner_id, to_period_kind(kind), key, ActionType(action.value)
    )
    return {"required": required}

@router.post("/schedules/{kind}/{key}/actions", response_model=Dict[str, Any])
async def apply_action(owner_id: str, kind: PeriodKindModel, key: str, payload: PriorityActionRequest,
                       service: ScheduleService = Depends(get_schedule_service)):
    """
    Изменение списка приоритетов периода
    """
    action = PriorityAction.from_dict(payload.to_document())
    record = await service.mutate_priorities(
        owner_id, to_period_kind(kind), key, action, confirmed=payload.confirmed
    )
    return record.to_dict()

@router.post("/schedules/{kind}/{key}/import", response_model=CountResponse)
async def import_unfinished(owner_id: str, kind: PeriodKindModel, key: str,
                            service: ScheduleService = Depends(get_schedule_service)):
    """
    Импорт невыполненных приоритетов предыдущего периода
    """
    return CountResponse(count=await service.import_unfinished(owner_id, to_period_kind(kind), key))

@router.post("/schedules/{kind}/{key}/copy-previous", response_model=CountResponse)
async def copy_previous(owner_id: str, kind: PeriodKindModel, key: str,
                        service: ScheduleService = Depends(get_schedule_service)):
    return CountResponse(count=await service.copy_previous_period(owner_id, to_period_kind(kind), key))

@router.put("/schedules/day/{key}/priorities", response_model=Dict[str, Any])
async def patch_day_priorities(owner_id: str, key: str, payload: DayPrioritiesRequest,
                               service: ScheduleService = Depends(get_schedule_service)):
    """
    Частичная запись приоритетов дня, возвращает статус дней месяца
    """
    items = [PriorityItem.from_dict(item.model_dump()) for item in payload.priorities]
    statuses = await service.patch_day_priorities(owner_id, key, items)
    return {iso: status.to_dict() for iso, status in statuses.items()}

@router.get("/schedules/month/{key}/status", response_model=Dict[str, Any])
async def month_status(owner_id: str, key: str,
                       service: ScheduleService = Depends(get_schedule_service)):
    statuses = await service.month_day_status(owner_id, key)
    return {iso: status.to_dict() for iso, status in statuses.items()}

# ===== НАСТРОЙКИ =====

@router.put("/settings/week-start", response_model=Dict[str, Any])
async def set_week_start(owner_id: str, payload: WeekStartRequest,
                         service: ScheduleService = Depends(get_schedule_service)):
    """
    Первый день недели (0 = воскресенье), действует с сегодняшнего дня
    """
    profile = await service.set_week_start(owner_id, payload.index)
    return profile.to_dict()
