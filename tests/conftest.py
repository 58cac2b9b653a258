import os

# config читается при импорте: тесты работают в памяти и без файловых логов
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("DAILY_RESET_ENABLED", "false")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime

import pytest
import pytz

from database.memory_store import InMemoryDocumentStore
from database.repositories import HabitRepository, ProfileRepository, ScheduleRepository


class FixedClock:
    """Управляемые часы для сервисов"""

    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def set(self, *args) -> None:
        self.moment = pytz.utc.localize(datetime(*args))


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def repositories(store):
    return HabitRepository(store), ScheduleRepository(store), ProfileRepository(store)


@pytest.fixture
def clock():
    return FixedClock(pytz.utc.localize(datetime(2025, 3, 15, 12, 0)))
