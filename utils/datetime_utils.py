from datetime import datetime, date, time
from typing import Optional
import pytz

DEFAULT_TZ = pytz.utc

def get_timezone(name: Optional[str] = None):
    return pytz.timezone(name) if name else DEFAULT_TZ

def now_in(tz=None) -> datetime:
    return datetime.now(tz or DEFAULT_TZ)

def to_local(moment: datetime, tz=None) -> datetime:
    tz = tz or DEFAULT_TZ
    if moment.tzinfo is None:
        # наивное время считаем уже локальным
        return tz.localize(moment)
    return moment.astimezone(tz)

def local_midnight(day: date, tz=None) -> datetime:
    return (tz or DEFAULT_TZ).localize(datetime.combine(day, time.min))
