#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - FastAPI Application
HTTP API для привычек и расписаний дня / недели / месяца

Версия: 1.0.0
Дата: 2025-07-14
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import config
from core.errors import DecodeFailure, EngineError, InvalidTransition, NotFound, PersistenceFailure
from services import close_all_services, get_service_manager, initialize_all_services
from services.scheduler import run_daily_reset, schedule_daily_reset, shutdown_scheduler, start_scheduler
from shared.models import HealthCheck
from dashboard.api import habits, schedules
from dashboard.dependencies import get_client_ip

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

def create_app(manage_services: bool = True, enable_scheduler: bool = None) -> FastAPI:
    """Создание FastAPI приложения.

    manage_services=False оставляет инициализацию и закрытие сервисов вызывающему
    (используется в тестах с заранее подготовленным хранилищем).
    """
    if enable_scheduler is None:
        enable_scheduler = config.scheduler.enabled
    app_start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Управление жизненным циклом приложения"""
        nonlocal app_start_time
        logger.info("🚀 Запуск MindReset Engine API...")
        app_start_time = time.time()

        manager = get_service_manager()
        if manage_services and not manager.initialized:
            if not initialize_all_services():
                raise RuntimeError("Не удалось инициализировать сервисы")
            manager = get_service_manager()

        if enable_scheduler:
            async def daily_reset_job():
                await run_daily_reset(manager.habit_service, manager.profiles)

            schedule_daily_reset(
                daily_reset_job,
                hour=config.scheduler.reset_hour,
                minute=config.scheduler.reset_minute,
                timezone=config.timezone,
            )
            start_scheduler()

        logger.info(f"🌐 API доступен на: http://{config.server.host}:{config.server.port}")
        yield

        logger.info("🛑 Остановка API...")
        if enable_scheduler:
            shutdown_scheduler()
        if manage_services:
            await close_all_services()
        logger.info("✅ Ресурсы очищены")

    app = FastAPI(
        title="MindReset Engine",
        description="Привычки со стриками и расписания с приоритетами",
        version=VERSION,
        docs_url="/api/docs" if config.server.debug_mode else None,
        redoc_url="/api/redoc" if config.server.debug_mode else None,
        lifespan=lifespan
    )

    # ===== MIDDLEWARE =====

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Логирование запросов"""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info(
            f"{request.method} {request.url.path} "
            f"- {response.status_code} "
            f"- {process_time:.3f}s "
            f"- {get_client_ip(request)}"
        )
        response.headers["X-Process-Time"] = f"{process_time:.3f}"
        return response

    # ===== ОБРАБОТЧИКИ ОШИБОК =====

    def _error_response(status_code: int, exc: EngineError) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": str(exc),
                "error": type(exc).__name__,
                "retryable": exc.retryable,
            }
        )

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return _error_response(404, exc)

    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition):
        return _error_response(409, exc)

    @app.exception_handler(DecodeFailure)
    async def decode_failure_handler(request: Request, exc: DecodeFailure):
        logger.error(f"❌ Поврежденные данные: {exc}")
        return _error_response(422, exc)

    @app.exception_handler(PersistenceFailure)
    async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
        logger.error(f"❌ Ошибка хранилища при {request.method} {request.url.path}: {exc}")
        return _error_response(503, exc)

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        logger.error(f"❌ Ошибка движка: {exc}")
        return _error_response(500, exc)

    # ===== МАРШРУТЫ =====

    app.include_router(habits.router)
    app.include_router(schedules.router)

    @app.get("/health", response_model=HealthCheck)
    async def health_check():
        """Health check для мониторинга"""
        health = get_service_manager().health_check()
        return HealthCheck(
            status=health["status"],
            service="mindreset-engine",
            version=VERSION,
            timestamp=time.time(),
            uptime=time.time() - app_start_time,
            details=health["services"],
        )

    @app.get("/api/info")
    async def api_info():
        """Информация об API"""
        return {
            "name": "MindReset Engine API",
            "version": VERSION,
            "environment": config.environment.value,
            "storage": config.storage.backend.value,
            "uptime": time.time() - app_start_time,
        }

    @app.get("/ping")
    async def ping():
        """Простой ping endpoint"""
        return {"message": "pong", "timestamp": time.time()}

    return app

app = create_app()
