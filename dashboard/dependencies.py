#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Dashboard Dependencies
Провайдеры сервисов и общие зависимости для FastAPI приложения

Версия: 1.0.0
Дата: 2025-07-14
"""

import logging

from fastapi import HTTPException, Request, status

from core.models import PeriodKind
from services import ServiceManager, get_service_manager
from services.habit_service import HabitService
from services.schedule_service import ScheduleService
from shared.models import PeriodKindModel

logger = logging.getLogger(__name__)

# ===== ПРОВАЙДЕРЫ ЗАВИСИМОСТЕЙ =====

async def get_manager() -> ServiceManager:
    """Получить инициализированный менеджер сервисов"""
    manager = get_service_manager()
    if not manager.initialized:
        logger.error("❌ Запрос до инициализации сервисов")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Сервисы не инициализированы"
        )
    return manager

async def get_habit_service() -> HabitService:
    """Получить экземпляр HabitService"""
    manager = await get_manager()
    return manager.habit_service

async def get_schedule_service() -> ScheduleService:
    """Получить экземпляр ScheduleService"""
    manager = await get_manager()
    return manager.schedule_service

def to_period_kind(kind: PeriodKindModel) -> PeriodKind:
    return PeriodKind(kind.value)

# ===== УТИЛИТЫ =====

def get_client_ip(request: Request) -> str:
    """Получить IP адрес клиента"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"
