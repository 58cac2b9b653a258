import pytest

from core.errors import InvalidTransition
from core.models import DEFAULT_PRIORITY_TITLE, PeriodKind, PriorityItem
from core.priorities import (
    ActionType, PriorityAction, PriorityList, import_unfinished, requires_confirmation,
)


def items(*titles, done=()):
    return [PriorityItem(item_id=f"id-{t}", title=t, is_completed=t in done) for t in titles]


def titles(plist):
    return [item.title for item in plist]


def test_add_uses_default_title():
    plist = PriorityList(PeriodKind.DAY)
    item = plist.add()
    assert item.title == DEFAULT_PRIORITY_TITLE
    assert not item.is_completed and item.progress == 0.0
    assert len(plist) == 1 and not plist.is_empty


def test_remove_toggle_rename():
    plist = PriorityList(PeriodKind.WEEK, items("a", "b", "c"))

    plist.remove("id-b")
    assert titles(plist) == ["a", "c"]

    assert plist.toggle("id-a").is_completed
    assert not plist.toggle("id-a").is_completed

    plist.rename("id-c", "  gym  ")
    assert plist.get("id-c").title == "gym"


def test_unknown_item_is_rejected():
    plist = PriorityList(PeriodKind.DAY, items("a"))
    with pytest.raises(InvalidTransition):
        plist.toggle("missing")
    with pytest.raises(InvalidTransition):
        plist.rename("id-a", "x" * 201)


def test_reorder_moves_group_preserving_order():
    plist = PriorityList(PeriodKind.DAY, items("a", "b", "c", "d", "e"))
    plist.reorder([0, 2], 4)
    assert titles(plist) == ["b", "d", "a", "c", "e"]

    plist = PriorityList(PeriodKind.DAY, items("a", "b", "c"))
    plist.reorder([2], 0)
    assert titles(plist) == ["c", "a", "b"]

    plist.reorder([0], 3)
    assert titles(plist) == ["a", "b", "c"]


def test_reorder_rejects_out_of_range():
    plist = PriorityList(PeriodKind.DAY, items("a", "b"))
    with pytest.raises(InvalidTransition):
        plist.reorder([2], 0)
    with pytest.raises(InvalidTransition):
        plist.reorder([0], 3)


def test_import_unfinished_skips_completed_and_duplicates():
    source = items("read", "run", "write", done=("run",))
    target = items("write")

    imported = import_unfinished(source, target)

    assert imported == 1
    assert [item.title for item in target] == ["write", "read"]
    copied = target[1]
    assert copied.item_id != "id-read"
    assert not copied.is_completed and copied.progress == 0.0


def test_second_import_adds_nothing_until_retitled():
    source = items("read", "write")
    target = []

    assert import_unfinished(source, target) == 2
    assert import_unfinished(source, target) == 0

    target[0].title = "read a book"
    assert import_unfinished(source, target) == 1
    assert len(target) == 3


def test_apply_action_from_document():
    plist = PriorityList(PeriodKind.MONTH, items("a", "b"))

    plist.apply(PriorityAction.from_dict({"action": "rename", "itemId": "id-a", "title": "A"}))
    plist.apply(PriorityAction.from_dict({"action": "reorder", "fromIndices": [1], "toIndex": 0}))
    added = plist.apply(PriorityAction(ActionType.ADD, title="c"))

    assert titles(plist) == ["b", "A", "c"]
    assert added.title == "c"

    with pytest.raises(InvalidTransition):
        PriorityAction.from_dict({"action": "explode"})
    with pytest.raises(InvalidTransition):
        plist.apply(PriorityAction(ActionType.RENAME, item_id="id-b"))


def test_confirmation_rules():
    assert requires_confirmation(True, ActionType.ADD)
    assert requires_confirmation(True, ActionType.TOGGLE)
    assert not requires_confirmation(True, ActionType.REORDER)
    assert not requires_confirmation(False, ActionType.REMOVE)


def test_import_keeps_repeated_source_titles():
    source = [PriorityItem(item_id=f"mail-{n}", title="Email") for n in range(2)]
    target = []

    assert import_unfinished(source, target) == 2
    assert titles(target) == ["Email", "Email"]
    assert import_unfinished(source, target) == 0
