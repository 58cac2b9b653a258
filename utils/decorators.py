import functools
import logging
import asyncio

def retry_on_exception(retries=3, delay=2, exceptions=(Exception,)):
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    logging.warning(f"⚠️ {func.__name__}: попытка {attempt}/{retries}: {e}")
                    if attempt == retries:
                        raise
                    await asyncio.sleep(delay)
        return wrapper
    return decorator

def log_execution(func):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        logging.debug(f"🔧 {func.__name__} начат")
        result = await func(*args, **kwargs)
        logging.debug(f"✅ {func.__name__} завершен")
        return result
    return wrapper
