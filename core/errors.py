#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Errors
Иерархия ошибок движка расписаний и привычек

Версия: 1.0.0
Дата: 2025-07-14
"""

from typing import Optional


class EngineError(Exception):
    """Базовое исключение движка"""

    retryable: bool = False

    def __init__(self, message: str, *, collection: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.collection = collection
        self.key = key


class NotFound(EngineError):
    """Запись отсутствует в хранилище (приводит к созданию записи по умолчанию)"""

    def __init__(self, collection: str, key: str):
        super().__init__(f"Запись {collection}/{key} не найдена", collection=collection, key=key)


class PersistenceFailure(EngineError):
    """Ошибка чтения/записи хранилища. Операцию можно повторить."""

    retryable = True


class DecodeFailure(EngineError):
    """Сохраненная запись не соответствует ожидаемой структуре"""
    pass


class InvalidTransition(EngineError):
    """Недопустимая операция, отклоняется до обращения к хранилищу"""
    pass


__all__ = [
    'EngineError',
    'NotFound',
    'PersistenceFailure',
    'DecodeFailure',
    'InvalidTransition',
]
