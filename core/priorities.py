#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
MindReset Engine v1.0 - Priority List
Упорядоченный список приоритетов дня / недели / месяца

Версия: 1.0.0
Дата: 2025-07-14
"""

from typing import Dict, List, Optional, Iterable, Any
from dataclasses import dataclass, field
from enum import Enum
import logging

from core.errors import InvalidTransition
from core.models import PeriodKind, PriorityItem, DEFAULT_PRIORITY_TITLE, validate_text

logger = logging.getLogger(__name__)


class ActionType(Enum):
    """Операции над списком приоритетов"""
    ADD = "add"
    REMOVE = "remove"
    REORDER = "reorder"
    TOGGLE = "toggle"
    RENAME = "rename"


# операции, требующие подтверждения для прошедших периодов
CONFIRMATION_ACTIONS = {ActionType.ADD, ActionType.REMOVE, ActionType.TOGGLE, ActionType.RENAME}


@dataclass
class PriorityAction:
    """Описание изменения списка приоритетов"""
    action: ActionType
    item_id: Optional[str] = None
    title: Optional[str] = None
    from_indices: List[int] = field(default_factory=list)
    to_index: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriorityAction":
        try:
            return cls(
                action=ActionType(data["action"]),
                item_id=data.get("itemId"),
                title=data.get("title"),
                from_indices=list(data.get("fromIndices") or []),
                to_index=data.get("toIndex"),
            )
        except (KeyError, ValueError) as e:
            raise InvalidTransition(f"Некорректное действие: {e}")


def requires_confirmation(period_is_past: bool, action: ActionType) -> bool:
    """Изменение прошедшего периода допускается только после подтверждения"""
    return period_is_past and action in CONFIRMATION_ACTIONS


def import_unfinished(source: Iterable[PriorityItem], target: List[PriorityItem]) -> int:
    """Перенос невыполненных пунктов source в target.

    Каждый перенесенный пункт получает новый id, isCompleted=False и
    progress=0. Пункт пропускается, если в target уже есть пункт с тем же
    заголовком (с учетом регистра). Заголовки target берутся до переноса,
    поэтому одинаковые пункты source переносятся все. Возвращает количество
    перенесенных.
    """
    existing = {item.title for item in target}
    imported = 0
    for item in source:
        if item.is_completed or item.title in existing:
            continue
        target.append(item.fresh_copy())
        imported += 1
    return imported


class PriorityList:
    """Список приоритетов одного периода"""

    def __init__(self, scope: PeriodKind, items: Optional[List[PriorityItem]] = None):
        self.scope = scope
        self.items: List[PriorityItem] = items if items is not None else []

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def _index_of(self, item_id: Optional[str]) -> int:
        for index, item in enumerate(self.items):
            if item.item_id == item_id:
                return index
        raise InvalidTransition(f"Приоритет {item_id} не найден ({self.scope.value})", key=item_id)

    def get(self, item_id: str) -> PriorityItem:
        return self.items[self._index_of(item_id)]

    # ===== MUTATIONS =====

    def add(self, title: str = DEFAULT_PRIORITY_TITLE) -> PriorityItem:
        item = PriorityItem.create(title)
        self.items.append(item)
        return item

    def remove(self, item_id: str) -> PriorityItem:
        return self.items.pop(self._index_of(item_id))

    def toggle(self, item_id: str) -> PriorityItem:
        item = self.get(item_id)
        item.is_completed = not item.is_completed
        return item

    def rename(self, item_id: str, title: str) -> PriorityItem:
        item = self.get(item_id)
        item.title = validate_text(title, min_length=0, max_length=200, field_name="title")
        return item

    def reorder(self, from_indices: Iterable[int], to_index: int) -> None:
        """Перемещение группы пунктов внутри массива.

        to_index - позиция в исходном массиве (0..len), перед которой
        вставляются перемещаемые пункты; их относительный порядок сохраняется.
        """
        moving = sorted(set(from_indices))
        size = len(self.items)
        if not moving:
            return
        if moving[0] < 0 or moving[-1] >= size:
            raise InvalidTransition(f"Индекс вне диапазона 0..{size - 1}: {moving}")
        if to_index is None or not 0 <= to_index <= size:
            raise InvalidTransition(f"Позиция вставки вне диапазона 0..{size}: {to_index}")

        selected = set(moving)
        before = [item for i, item in enumerate(self.items[:to_index]) if i not in selected]
        after = [item for i, item in enumerate(self.items[to_index:], start=to_index) if i not in selected]
        self.items[:] = before + [self.items[i] for i in moving] + after

    def import_unfinished(self, source: Iterable[PriorityItem]) -> int:
        return import_unfinished(source, self.items)

    def apply(self, action: PriorityAction) -> Optional[PriorityItem]:
        """Применение действия (удобно для API / сервисов)"""
        if action.action is ActionType.ADD:
            return self.add(action.title if action.title is not None else DEFAULT_PRIORITY_TITLE)
        if action.action is ActionType.REMOVE:
            return self.remove(action.item_id)
        if action.action is ActionType.TOGGLE:
            return self.toggle(action.item_id)
        if action.action is ActionType.RENAME:
            if action.title is None:
                raise InvalidTransition("Для переименования нужен заголовок")
            return self.rename(action.item_id, action.title)
        self.reorder(action.from_indices, action.to_index)
        return None


__all__ = [
    'ActionType', 'PriorityAction', 'PriorityList', 'CONFIRMATION_ACTIONS',
    'requires_confirmation', 'import_unfinished',
]
