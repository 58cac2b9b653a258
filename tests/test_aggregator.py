import asyncio
from datetime import date, datetime

import pytest
import pytz

from core.aggregator import DayStatus, ScheduleAggregator, day_status
from core.errors import InvalidTransition, PersistenceFailure
from core.models import DaySchedule, PeriodKind, PriorityItem, WeekSchedule
from core.priorities import ActionType, PriorityAction
from database.memory_store import InMemoryDocumentStore
from database.repositories import ScheduleRepository
from database.store import day_schedules, month_schedules

NOW = pytz.utc.localize(datetime(2025, 3, 15, 12))


def make_aggregator(store=None, **kwargs):
    store = store or InMemoryDocumentStore()
    return store, ScheduleAggregator(ScheduleRepository(store), **kwargs)


def priority(title, done=False):
    return PriorityItem(item_id=f"id-{title}", title=title, is_completed=done)


async def _failing_set(*args, **kwargs):
    raise OSError("storage offline")


def test_day_status_counts():
    status = day_status([priority("a", True), priority("b")])
    assert status == DayStatus(done=1, total=2)
    assert status.ratio == 0.5 and not status.fully_completed
    assert DayStatus(0, 0).ratio == 0.0


def test_missing_day_is_created_with_default_time_blocks():
    store, aggregator = make_aggregator()

    record = asyncio.run(aggregator.load_or_create(PeriodKind.DAY, "2025-03-15", "u1"))

    assert isinstance(record, DaySchedule)
    assert record.wake_up_time.hour == 7 and record.sleep_time.hour == 22
    assert len(record.time_blocks) == 15
    assert record.priorities == []
    assert store.keys(day_schedules("u1")) == ["2025-03-15"]


def test_missing_week_gets_named_days():
    _, aggregator = make_aggregator()

    record = asyncio.run(aggregator.load_or_create(PeriodKind.WEEK, "2025-03-09", "u1"))

    assert isinstance(record, WeekSchedule)
    assert list(record.daily_intentions) == ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
    assert all(todos == [] for todos in record.daily_todo_lists.values())


def test_concurrent_loads_share_one_record():
    store, aggregator = make_aggregator(InMemoryDocumentStore(latency=0.01))

    async def scenario():
        return await asyncio.gather(*(
            aggregator.load_or_create(PeriodKind.MONTH, "2025-03", "u1") for _ in range(5)
        ))

    records = asyncio.run(scenario())

    assert all(record is records[0] for record in records)
    assert store.write_count == 1


def test_march_month_cache_covers_every_day():
    store, aggregator = make_aggregator(max_concurrent_reads=4)
    repository = aggregator.repository

    async def scenario():
        for day in range(1, 11):
            await repository.save(DaySchedule(
                schedule_id=f"2025-03-{day:02d}", user_id="u1", date=date(2025, 3, day),
                priorities=[priority("a", True), priority("b", True)],
            ))
        for day in range(11, 16):
            await repository.save(DaySchedule(
                schedule_id=f"2025-03-{day:02d}", user_id="u1", date=date(2025, 3, day),
                priorities=[priority("a", True), priority("b")],
            ))
        return await aggregator.refresh_month_cache("u1", "2025-03")

    status = asyncio.run(scenario())

    assert len(status) == 31
    assert sum(1 for s in status.values() if s.fully_completed) == 10
    assert sum(1 for s in status.values() if 0 < s.done < s.total) == 5
    assert sum(1 for s in status.values() if s.total == 0) == 16
    assert status["2025-03-12"] == DayStatus(done=1, total=2)

    stored = asyncio.run(store.get(month_schedules("u1"), "2025-03"))
    assert len(stored["dayCompletions"]) == 31
    assert stored["dayCompletions"]["2025-03-01"] == 1.0
    assert aggregator.month_status("u1", "2025-03") == status


def test_day_patch_updates_month_status():
    store, aggregator = make_aggregator()

    async def scenario():
        await aggregator.refresh_month_cache("u1", "2025-03")
        return await aggregator.patch_day_priorities(
            "u1", "2025-03-20", [priority("a", True), priority("b"), priority("c")]
        )

    status = asyncio.run(scenario())

    assert status["2025-03-20"] == DayStatus(done=1, total=3)
    stored = asyncio.run(store.get(day_schedules("u1"), "2025-03-20"))
    assert [p["title"] for p in stored["priorities"]] == ["a", "b", "c"]


def test_month_refresh_failure_after_day_patch_is_not_raised():
    store, aggregator = make_aggregator()
    original_get = store.get

    async def failing_month_get(collection, key):
        if collection == month_schedules("u1"):
            raise OSError("month unavailable")
        return await original_get(collection, key)

    store.get = failing_month_get
    status = asyncio.run(aggregator.patch_day_priorities("u1", "2025-03-20", [priority("a")]))

    assert status == {}
    assert asyncio.run(original_get(day_schedules("u1"), "2025-03-20"))["priorities"][0]["title"] == "a"


def test_past_period_requires_confirmation():
    _, aggregator = make_aggregator()
    add = PriorityAction(ActionType.ADD, title="Review")

    with pytest.raises(InvalidTransition):
        asyncio.run(aggregator.mutate("u1", PeriodKind.DAY, "2025-03-10", add, NOW))

    record = asyncio.run(aggregator.mutate("u1", PeriodKind.DAY, "2025-03-10", add, NOW, confirmed=True))
    assert [item.title for item in record.priorities] == ["Review"]

    # перестановка не требует подтверждения
    reorder = PriorityAction(ActionType.REORDER, from_indices=[0], to_index=1)
    asyncio.run(aggregator.mutate("u1", PeriodKind.DAY, "2025-03-10", reorder, NOW))


def test_failed_mutation_rolls_back_cached_record():
    store, aggregator = make_aggregator()

    async def prepare():
        record = await aggregator.load_or_create(PeriodKind.WEEK, "2025-03-09", "u1")
        record.weekly_priorities = [priority("a")]
        await aggregator.repository.save(record)

    asyncio.run(prepare())
    store.set = _failing_set
    with pytest.raises(PersistenceFailure):
        asyncio.run(aggregator.mutate(
            "u1", PeriodKind.WEEK, "2025-03-09", PriorityAction(ActionType.TOGGLE, item_id="id-a"), NOW
        ))

    cached = aggregator.cached(PeriodKind.WEEK, "2025-03-09", "u1")
    assert [(item.title, item.is_completed) for item in cached.weekly_priorities] == [("a", False)]


def test_carry_over_unfinished_into_current_week():
    _, aggregator = make_aggregator()
    repository = aggregator.repository

    async def scenario():
        await repository.save(WeekSchedule(
            schedule_id="2025-03-02", user_id="u1", start_of_week=date(2025, 3, 2),
            weekly_priorities=[priority("read"), priority("run", True)],
        ))
        first = await aggregator.carry_over_unfinished("u1", PeriodKind.WEEK, "2025-03-02", "2025-03-09", NOW)
        second = await aggregator.carry_over_unfinished("u1", PeriodKind.WEEK, "2025-03-02", "2025-03-09", NOW)
        return first, second

    assert asyncio.run(scenario()) == (1, 0)
    target = aggregator.cached(PeriodKind.WEEK, "2025-03-09", "u1")
    assert [item.title for item in target.weekly_priorities] == ["read"]

    with pytest.raises(InvalidTransition):
        asyncio.run(aggregator.carry_over_unfinished(
            "u1", PeriodKind.WEEK, "2025-02-23", "2025-03-02", NOW
        ))


def test_carry_over_without_source_imports_nothing():
    _, aggregator = make_aggregator()
    assert asyncio.run(aggregator.carry_over_unfinished(
        "u1", PeriodKind.MONTH, "2025-02", "2025-03", NOW
    )) == 0


def test_copy_previous_period_replaces_items():
    _, aggregator = make_aggregator()

    async def scenario():
        feb = await aggregator.load_or_create(PeriodKind.MONTH, "2025-02", "u1")
        feb.monthly_priorities = [priority("save", True), priority("learn")]
        await aggregator.repository.save(feb)
        return await aggregator.copy_previous_period("u1", PeriodKind.MONTH, "2025-03")

    assert asyncio.run(scenario()) == 2
    march = aggregator.cached(PeriodKind.MONTH, "2025-03", "u1")
    assert [(i.title, i.is_completed) for i in march.monthly_priorities] == [("save", True), ("learn", False)]
    assert march.monthly_priorities[0].item_id != "id-save"


def test_copy_previous_day_copies_time_blocks():
    _, aggregator = make_aggregator()

    async def scenario():
        friday = await aggregator.load_or_create(PeriodKind.DAY, "2025-03-14", "u1")
        friday.priorities = [priority("gym")]
        friday.time_blocks[0].task = "Run"
        await aggregator.repository.save(friday)
        copied = await aggregator.copy_previous_period("u1", PeriodKind.DAY, "2025-03-15")
        stored = await aggregator.repository.get(PeriodKind.DAY, "u1", "2025-03-15")
        return friday, copied, stored

    friday, copied, stored = asyncio.run(scenario())
    assert copied == 1
    assert [p.title for p in stored.priorities] == ["gym"]
    assert stored.wake_up_time.date() == date(2025, 3, 15) and stored.wake_up_time.hour == 7
    assert len(stored.time_blocks) == len(friday.time_blocks)
    first = stored.time_blocks[0]
    assert first.task == "Run"
    assert first.block_id != friday.time_blocks[0].block_id
    assert first.start.date() == date(2025, 3, 15)
    assert first.start.hour == friday.time_blocks[0].start.hour


def test_watch_month_subscribes_to_month_and_days():
    store, aggregator = make_aggregator()
    changes = []

    async def scenario():
        await aggregator.refresh_month_cache("u1", "2025-03")
        handles = aggregator.watch("u1", PeriodKind.MONTH, "2025-03",
                                   lambda kind, key, record: changes.append((kind, key)))
        assert len(handles) == 32
        assert store.subscriber_count() == 32

        await aggregator.repository.save(DaySchedule(
            schedule_id="2025-03-05", user_id="u1", date=date(2025, 3, 5),
            priorities=[priority("a", True)],
        ))
        await asyncio.sleep(0.01)

        aggregator.watch("u1", PeriodKind.MONTH, "2025-02")
        assert all(not handle.active for handle in handles)
        assert store.subscriber_count() == 1 + 28

        aggregator.unwatch("u1")
        assert store.subscriber_count() == 0
        assert aggregator.active_subscriptions("u1") == 0

    asyncio.run(scenario())

    assert (PeriodKind.DAY, "2025-03-05") in changes
    assert aggregator.month_status("u1", "2025-03")["2025-03-05"] == DayStatus(done=1, total=1)
