# services/__init__.py

"""
Модуль сервисов MindReset Engine

Этот модуль связывает хранилище, репозитории, агрегатор расписаний и
сервисы привычек / расписаний в одну точку инициализации.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from config import StorageConfig, config
from core.aggregator import ScheduleAggregator
from core.streaks import StreakEngine
from database import create_store
from database.repositories import HabitRepository, ProfileRepository, ScheduleRepository
from database.store import DocumentStore
from .habit_service import HabitService, get_habit_service, initialize_habit_service
from .schedule_service import ScheduleService, get_schedule_service, initialize_schedule_service

logger = logging.getLogger(__name__)

class ServiceManager:
    """
    Менеджер для управления всеми сервисами движка

    Обеспечивает:
    - Правильную инициализацию сервисов в нужном порядке
    - Управление зависимостями между сервисами
    - Корректное закрытие хранилища
    """

    def __init__(self):
        self.store: Optional[DocumentStore] = None
        self.profiles: Optional[ProfileRepository] = None
        self.aggregator: Optional[ScheduleAggregator] = None
        self.habit_service: Optional[HabitService] = None
        self.schedule_service: Optional[ScheduleService] = None
        self.initialized = False

    def initialize_services(self, store: Optional[DocumentStore] = None,
                            storage: Optional[StorageConfig] = None,
                            clock: Optional[Callable[[], datetime]] = None,
                            timezone: Optional[str] = None) -> bool:
        """Инициализация всех сервисов"""
        try:
            logger.info("🔧 Инициализация сервисов MindReset Engine...")
            storage = storage or config.storage
            timezone = timezone or config.timezone

            # 1. Хранилище и репозитории
            logger.info("📂 Инициализация хранилища...")
            self.store = store or create_store(storage)
            self.profiles = ProfileRepository(self.store)
            habits = HabitRepository(self.store)
            schedules = ScheduleRepository(self.store)

            # 2. Агрегатор расписаний
            self.aggregator = ScheduleAggregator(schedules, storage.max_concurrent_reads)

            # 3. Сервисы
            logger.info("📝 Инициализация HabitService и ScheduleService...")
            self.habit_service = initialize_habit_service(
                habits, self.profiles, engine=StreakEngine(), clock=clock, default_timezone=timezone
            )
            self.schedule_service = initialize_schedule_service(
                self.aggregator, self.profiles, clock=clock, default_timezone=timezone
            )

            self.initialized = True
            logger.info("✅ Все сервисы инициализированы успешно!")
            return True

        except (ValueError, OSError) as e:
            logger.error(f"❌ Ошибка инициализации сервисов: {e}")
            self.store = None
            self.initialized = False
            return False

    def get_services_info(self) -> dict:
        """Получить информацию о состоянии сервисов"""
        return {
            "initialized": self.initialized,
            "services": {
                "store": type(self.store).__name__ if self.store else None,
                "habit_service": "active" if self.habit_service else None,
                "schedule_service": "active" if self.schedule_service else None,
            }
        }

    def health_check(self) -> dict:
        """Проверка состояния всех сервисов"""
        health = {
            "status": "healthy" if self.initialized else "error",
            "services": {
                "store": {"status": "healthy" if self.store else "error"},
                "habit_service": {"status": "healthy" if self.habit_service else "error"},
                "schedule_service": {"status": "healthy" if self.schedule_service else "error"},
            }
        }
        if self.aggregator:
            health["services"]["aggregator"] = {"status": "healthy"}
        return health

    async def close_services(self):
        """Закрытие всех сервисов"""
        logger.info("🛑 Закрытие сервисов...")
        if self.store:
            await self.store.close()
        self.habit_service = None
        self.schedule_service = None
        self.aggregator = None
        self.store = None
        self.initialized = False
        logger.info("✅ Все сервисы закрыты")

# Глобальный экземпляр менеджера сервисов
_service_manager = None

def get_service_manager() -> ServiceManager:
    """Получить глобальный менеджер сервисов"""
    global _service_manager
    if _service_manager is None:
        _service_manager = ServiceManager()
    return _service_manager

def initialize_all_services(**kwargs) -> bool:
    """Инициализация всех сервисов"""
    manager = get_service_manager()
    return manager.initialize_services(**kwargs)

async def close_all_services():
    """Закрытие всех сервисов"""
    global _service_manager
    if _service_manager:
        await _service_manager.close_services()
        _service_manager = None

def get_services_health() -> dict:
    """Получить состояние всех сервисов"""
    manager = get_service_manager()
    return manager.health_check()

# Экспорты для удобства
__all__ = [
    'HabitService',
    'ScheduleService',
    'ServiceManager',
    'get_habit_service',
    'get_schedule_service',
    'get_service_manager',
    'initialize_all_services',
    'close_all_services',
    'get_services_health'
]
