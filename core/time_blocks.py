# core/time_blocks.py
"""Почасовые блоки дня между подъемом и отбоем"""

import uuid
from datetime import datetime, date, time, timedelta
from typing import List, Optional, Tuple

from core.models import TimeBlock
from utils.datetime_utils import to_local

DEFAULT_WAKE = time(7, 0)
DEFAULT_SLEEP = time(22, 0)


def default_wake_sleep(day: date, tz) -> Tuple[datetime, datetime]:
    """Подъем 7:00 и отбой 22:00 в часовом поясе пользователя"""
    return (
        tz.localize(datetime.combine(day, DEFAULT_WAKE)),
        tz.localize(datetime.combine(day, DEFAULT_SLEEP)),
    )


def normalize_sleep(wake: datetime, sleep: datetime) -> datetime:
    """Отбой не позже подъема означает отбой на следующий календарный день"""
    while sleep <= wake:
        sleep += timedelta(days=1)
    return sleep


def generate_time_blocks(wake: datetime, sleep: datetime) -> List[TimeBlock]:
    sleep = normalize_sleep(wake, sleep)
    blocks = []
    current = wake

    # неровный подъем (7:30) - отдельный блок до начала следующего часа
    if wake.minute or wake.second:
        next_hour = wake.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        end = min(next_hour, sleep)
        blocks.append(TimeBlock(block_id=str(uuid.uuid4()), start=current, end=end))
        current = end

    while current < sleep:
        end = min(current + timedelta(hours=1), sleep)
        blocks.append(TimeBlock(block_id=str(uuid.uuid4()), start=current, end=end))
        current = end

    return blocks


def move_to_day(moment: Optional[datetime], source_day: date, target_day: date, tz) -> Optional[datetime]:
    """Тот же час на другой день (блок после полуночи остается на следующем дне)"""
    if moment is None:
        return None
    local = to_local(moment, tz)
    return tz.localize(datetime.combine(local.date() + (target_day - source_day), local.time()))


def copy_time_blocks(blocks: List[TimeBlock], source_day: date, target_day: date, tz) -> List[TimeBlock]:
    """Копия расписания блоков на другой день с новыми id"""
    return [
        TimeBlock(
            block_id=str(uuid.uuid4()),
            start=move_to_day(block.start, source_day, target_day, tz),
            end=move_to_day(block.end, source_day, target_day, tz),
            task=block.task,
        )
        for block in blocks
    ]
