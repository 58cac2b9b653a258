# services/scheduler.py

import logging
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.errors import EngineError
from services.habit_service import HabitService
from database.repositories import ProfileRepository
from utils.decorators import log_execution

logger = logging.getLogger(__name__)

DAILY_RESET_JOB_ID = "daily_reset"

scheduler = AsyncIOScheduler()

def start_scheduler():
    if not scheduler.running:
        scheduler.start()
        logger.info("⏰ Планировщик запущен")

def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("🛑 Планировщик остановлен")

def schedule_daily_reset(callback, hour: int = 0, minute: int = 0, timezone: Optional[str] = None):
    scheduler.add_job(
        callback, 'cron', hour=hour, minute=minute, timezone=timezone,
        id=DAILY_RESET_JOB_ID, replace_existing=True
    )
    logger.info(f"⏰ Ежедневный сброс запланирован на {hour:02d}:{minute:02d} ({timezone or 'local'})")

@log_execution
async def run_daily_reset(habit_service: HabitService, profiles: ProfileRepository) -> Dict[str, int]:
    """Сброс флагов выполнения для всех владельцев. Ошибка одного владельца не останавливает остальных."""
    results = {}
    for owner_id in await profiles.list_owner_ids():
        try:
            results[owner_id] = await habit_service.daily_reset(owner_id)
        except EngineError as e:
            logger.error(f"❌ Ежедневный сброс для {owner_id} не выполнен: {e}")
    logger.info(f"🔄 Ежедневный сброс: владельцев {len(results)}, привычек {sum(results.values())}")
    return results
