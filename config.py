#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Configuration
Централизованная конфигурация с валидацией

Версия: 1.0.0
Дата: 2025-07-14
"""

import os
import sys
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass
from enum import Enum

import pytz

class Environment(Enum):
    """Среды выполнения"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

class LogLevel(Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class StorageBackend(Enum):
    """Бэкенды хранилища документов"""
    MEMORY = "memory"
    JSON = "json"
    REDIS = "redis"

@dataclass
class StorageConfig:
    """Конфигурация хранилища"""
    backend: StorageBackend = StorageBackend.JSON
    data_dir: Path = Path("data")
    redis_url: Optional[str] = None
    redis_prefix: str = "mindreset"
    max_concurrent_reads: int = 30

@dataclass
class ServerConfig:
    """Конфигурация сервера"""
    host: str = "0.0.0.0"
    port: int = 8080
    debug_mode: bool = False
    health_check_enabled: bool = True

@dataclass
class SchedulerConfig:
    """Конфигурация ежедневного сброса"""
    enabled: bool = True
    reset_hour: int = 0
    reset_minute: int = 0

class EngineConfig:
    """Главный класс конфигурации"""

    def __init__(self):
        self.environment = Environment(os.getenv('ENVIRONMENT', 'development'))
        self._load_config()
        self._validate_config()
        self._ensure_directories()

    def _load_config(self):
        """Загрузка конфигурации из переменных окружения"""

        # Директории
        self.data_dir = Path(os.getenv('DATA_DIR', 'data'))
        self.log_dir = Path(os.getenv('LOG_DIR', 'logs'))

        # Хранилище
        self.storage = StorageConfig(
            backend=StorageBackend(os.getenv('STORAGE_BACKEND', 'json').lower()),
            data_dir=self.data_dir,
            redis_url=os.getenv('REDIS_URL'),
            redis_prefix=os.getenv('REDIS_PREFIX', 'mindreset'),
            max_concurrent_reads=int(os.getenv('MAX_CONCURRENT_READS', 30))
        )

        # Сервер
        self.server = ServerConfig(
            host=os.getenv('HOST', '0.0.0.0'),
            port=int(os.getenv('PORT', 8080)),
            debug_mode=os.getenv('DEBUG_MODE', 'false').lower() == 'true',
            health_check_enabled=os.getenv('HEALTH_CHECK', 'true').lower() == 'true'
        )

        # Планировщик
        self.scheduler = SchedulerConfig(
            enabled=os.getenv('DAILY_RESET_ENABLED', 'true').lower() == 'true',
            reset_hour=int(os.getenv('DAILY_RESET_HOUR', 0)),
            reset_minute=int(os.getenv('DAILY_RESET_MINUTE', 0))
        )

        # Часовой пояс пользователей по умолчанию
        self.timezone = os.getenv('TIMEZONE', 'UTC')

        # Логирование
        self.log_level = LogLevel(os.getenv('LOG_LEVEL', 'INFO'))
        self.log_to_file = os.getenv('LOG_TO_FILE', 'true').lower() == 'true'
        self.log_format = os.getenv(
            'LOG_FORMAT',
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )

    def _validate_config(self):
        """Валидация конфигурации"""
        errors = []

        if self.storage.backend is StorageBackend.REDIS and not self.storage.redis_url:
            errors.append("STORAGE_BACKEND=redis требует REDIS_URL")

        if self.storage.max_concurrent_reads < 1:
            errors.append("MAX_CONCURRENT_READS должен быть положительным числом")

        if not 1024 <= self.server.port <= 65535:
            errors.append(f"Порт {self.server.port} вне допустимого диапазона (1024-65535)")

        if not 0 <= self.scheduler.reset_hour <= 23 or not 0 <= self.scheduler.reset_minute <= 59:
            errors.append("Время ежедневного сброса вне диапазона 00:00-23:59")

        if self.timezone not in pytz.all_timezones_set:
            errors.append(f"Неизвестный часовой пояс {self.timezone}")

        if errors:
            raise ValueError("Ошибки конфигурации:\n" + "\n".join(f"• {error}" for error in errors))

    def _ensure_directories(self):
        """Создание необходимых директорий"""
        directories = [self.log_dir]
        if self.storage.backend is StorageBackend.JSON:
            directories.append(self.data_dir)

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def get_logging_config(self) -> Dict[str, Any]:
        """Получение конфигурации логирования"""
        handlers = ['console']
        if self.log_to_file:
            handlers.append('file')

        return {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': self.log_format,
                    'datefmt': '%Y-%m-%d %H:%M:%S'
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': self.log_level.value,
                    'formatter': 'default',
                    'stream': sys.stdout
                },
                'file': {
                    'class': 'logging.handlers.RotatingFileHandler',
                    'level': self.log_level.value,
                    'formatter': 'default',
                    'filename': str(self.log_dir / f"engine_{self.environment.value}.log"),
                    'maxBytes': 10485760,  # 10MB
                    'backupCount': 5,
                    'encoding': 'utf-8'
                }
            },
            'loggers': {
                '': {
                    'level': self.log_level.value,
                    'handlers': handlers,
                    'propagate': False
                },
                'apscheduler': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                },
                'uvicorn.access': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                }
            }
        }

    def is_development(self) -> bool:
        """Проверка режима разработки"""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Проверка продакшн режима"""
        return self.environment == Environment.PRODUCTION

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация конфигурации в словарь"""
        return {
            'environment': self.environment.value,
            'storage': {
                'backend': self.storage.backend.value,
                'data_dir': str(self.storage.data_dir),
                'redis': bool(self.storage.redis_url),
                'max_concurrent_reads': self.storage.max_concurrent_reads
            },
            'server': {
                'host': self.server.host,
                'port': self.server.port,
                'debug_mode': self.server.debug_mode
            },
            'scheduler': {
                'enabled': self.scheduler.enabled,
                'reset_time': f"{self.scheduler.reset_hour:02d}:{self.scheduler.reset_minute:02d}"
            },
            'timezone': self.timezone,
            'log_level': self.log_level.value
        }

# Глобальный экземпляр конфигурации
config = EngineConfig()

# Экспорт для использования в других модулях
__all__ = [
    'config',
    'EngineConfig',
    'Environment',
    'LogLevel',
    'StorageBackend',
    'StorageConfig',
    'ServerConfig',
    'SchedulerConfig'
]
