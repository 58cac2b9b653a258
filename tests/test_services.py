import asyncio
from datetime import date

import pytest

from core.errors import InvalidTransition, NotFound
from core.models import PeriodKind
from core.priorities import ActionType, PriorityAction
from database.memory_store import InMemoryDocumentStore
from core.aggregator import ScheduleAggregator
from services import ServiceManager
from services.habit_service import DEFAULT_HABITS, HabitService
from services.schedule_service import ScheduleService
from services.scheduler import run_daily_reset


@pytest.fixture
def habit_service(repositories, clock):
    habits, _, profiles = repositories
    return HabitService(habits, profiles, clock=clock, default_timezone="UTC")


@pytest.fixture
def schedule_service(repositories, clock):
    _, schedules, profiles = repositories
    return ScheduleService(ScheduleAggregator(schedules), profiles, clock=clock, default_timezone="UTC")


# ===== HABITS =====

def test_toggle_awards_points_to_owner(habit_service, repositories):
    _, _, profiles = repositories

    async def scenario():
        habit = await habit_service.add_habit("u1", "Read", description="20 pages")
        outcome = await habit_service.toggle_habit(habit.habit_id)
        profile = await profiles.get("u1")
        return outcome, profile

    outcome, profile = asyncio.run(scenario())
    assert outcome["result"].completed and outcome["result"].awarded_points == 2
    assert outcome["habit"].current_streak == 1
    assert profile.total_points == 2


def test_unmark_keeps_awarded_points(habit_service, repositories):
    _, _, profiles = repositories

    async def scenario():
        habit = await habit_service.add_habit("u1", "Read")
        await habit_service.toggle_habit(habit.habit_id)
        outcome = await habit_service.toggle_habit(habit.habit_id)
        return outcome, await profiles.get("u1")

    outcome, profile = asyncio.run(scenario())
    assert not outcome["result"].completed
    assert outcome["habit"].current_streak == 0
    assert profile.total_points == 2


def test_daily_reset_runs_once_per_day(habit_service, clock):
    async def scenario():
        habit = await habit_service.add_habit("u1", "Stretch")
        await habit_service.toggle_habit(habit.habit_id)
        clock.set(2025, 3, 16, 0, 5)
        first = await habit_service.daily_reset("u1")
        second = await habit_service.daily_reset("u1")
        return first, second, await habit_service.get_habit(habit.habit_id)

    first, second, habit = asyncio.run(scenario())
    assert (first, second) == (1, 0)
    assert not habit.is_completed_today
    assert habit.current_streak == 1


def test_toggle_next_morning_without_sweep_continues_streak(habit_service, clock):
    async def scenario():
        habit = await habit_service.add_habit("u1", "Read")
        await habit_service.toggle_habit(habit.habit_id)
        clock.set(2025, 3, 16, 9, 0)
        return await habit_service.toggle_habit(habit.habit_id)

    outcome = asyncio.run(scenario())
    assert outcome["result"].completed
    assert outcome["habit"].current_streak == 2
    assert outcome["result"].awarded_points == 3


def test_listing_clears_yesterdays_completion(habit_service, clock):
    async def scenario():
        habit = await habit_service.add_habit("u1", "Read")
        await habit_service.toggle_habit(habit.habit_id)
        clock.set(2025, 3, 16, 9, 0)
        listed = await habit_service.list_habits("u1")
        stored = await habit_service.get_habit(habit.habit_id)
        return listed, stored, await habit_service.daily_reset("u1")

    listed, stored, swept = asyncio.run(scenario())
    assert not listed[0].is_completed_today
    assert not stored.is_completed_today
    assert stored.current_streak == 1
    assert swept == 0


def test_default_habits_are_created_once(habit_service):
    async def scenario():
        created = await habit_service.setup_default_habits("u1")
        again = await habit_service.setup_default_habits("u1")
        return created, again, await habit_service.list_habits("u1")

    created, again, listed = asyncio.run(scenario())
    assert [h.title for h in created] == [preset["title"] for preset in DEFAULT_HABITS]
    assert again == []
    assert len(listed) == 3


def test_add_habit_rejects_bad_input(habit_service):
    with pytest.raises(InvalidTransition):
        asyncio.run(habit_service.add_habit("u1", "   "))
    with pytest.raises(InvalidTransition):
        asyncio.run(habit_service.add_habit("u1", "Run", metric_category="distance"))


def test_record_value_for_specific_day(habit_service):
    async def scenario():
        habit = await habit_service.add_habit(
            "u1", "Pages", metric_category="quantity", metric_type={"type": "custom", "value": "Pages"}
        )
        await habit_service.record_habit_value(habit.habit_id, 30.0, date(2025, 3, 14))
        await habit_service.record_habit_value(habit.habit_id, 35.0, date(2025, 3, 14))
        return await habit_service.get_habit(habit.habit_id)

    habit = asyncio.run(scenario())
    assert len(habit.daily_records) == 1
    assert habit.record_for(date(2025, 3, 14)).value == 35.0


def test_deleted_habit_is_gone(habit_service):
    async def scenario():
        habit = await habit_service.add_habit("u1", "Temp")
        await habit_service.delete_habit(habit.habit_id)
        await habit_service.get_habit(habit.habit_id)

    with pytest.raises(NotFound):
        asyncio.run(scenario())


def test_scheduled_reset_covers_all_owners(habit_service, repositories, clock):
    _, _, profiles = repositories

    async def scenario():
        for owner in ("u1", "u2"):
            habit = await habit_service.add_habit(owner, "Walk")
            await habit_service.toggle_habit(habit.habit_id)
        clock.set(2025, 3, 16, 0, 0)
        return await run_daily_reset(habit_service, profiles)

    assert asyncio.run(scenario()) == {"u1": 1, "u2": 1}


# ===== SCHEDULES =====

def test_load_current_month(schedule_service):
    view = asyncio.run(schedule_service.load_period(PeriodKind.MONTH, date(2025, 3, 15), "u1"))

    assert view.key == "2025-03"
    assert view.is_current and not view.is_past
    assert len(view.day_status) == 31
    # аккаунт создан в текущем месяце
    assert not view.can_go_back and not view.can_go_forward
    assert view.can_import_unfinished
    assert view.to_dict()["record"]["yearMonth"] == "2025-03"


def test_load_week_includes_days(schedule_service):
    view = asyncio.run(schedule_service.load_period(PeriodKind.WEEK, date(2025, 3, 12), "u1"))

    assert view.key == "2025-03-09"
    assert sorted(view.days) == [f"2025-03-{d:02d}" for d in range(9, 16)]


def test_navigation_after_account_creation(schedule_service, repositories, clock):
    _, _, profiles = repositories

    async def scenario():
        await profiles.get_or_create("u1", now=clock().replace(month=1, day=20))
        back = await schedule_service.navigate_period("u1", PeriodKind.MONTH, "2025-03", -1)
        limit = await schedule_service.navigate_period("u1", PeriodKind.MONTH, "2025-01", -1)
        future = await schedule_service.navigate_period("u1", PeriodKind.MONTH, "2025-03", 1)
        bounds = await schedule_service.navigation_bounds("u1", PeriodKind.MONTH)
        return back, limit, future, bounds

    back, limit, future, bounds = asyncio.run(scenario())
    assert back.accepted and back.key == "2025-02"
    assert limit.reason == "before_account_creation"
    assert future.reason == "beyond_current_period"
    assert bounds == {"min": -2, "max": 0}


def test_week_start_change_moves_current_week(schedule_service):
    async def scenario():
        profile = await schedule_service.set_week_start("u1", 1)
        view = await schedule_service.load_period(PeriodKind.WEEK, date(2025, 3, 15), "u1")
        return profile, view

    profile, view = asyncio.run(scenario())
    assert [c.to_dict() for c in profile.week_start_changes] == [{"date": "2025-03-15", "index": 1}]
    assert view.key == "2025-03-10"
    assert list(view.record.daily_intentions)[0] == "Mon"

    with pytest.raises(InvalidTransition):
        asyncio.run(schedule_service.set_week_start("u1", 7))


def test_past_day_edit_needs_confirmation(schedule_service):
    action = PriorityAction(ActionType.ADD, title="Catch up")

    async def scenario():
        required = await schedule_service.requires_confirmation("u1", PeriodKind.DAY, "2025-03-14", ActionType.ADD)
        with pytest.raises(InvalidTransition):
            await schedule_service.mutate_priorities("u1", PeriodKind.DAY, "2025-03-14", action)
        record = await schedule_service.mutate_priorities(
            "u1", PeriodKind.DAY, "2025-03-14", action, confirmed=True
        )
        return required, record

    required, record = asyncio.run(scenario())
    assert required
    assert [p.title for p in record.priorities] == ["Catch up"]


def test_import_unfinished_from_previous_day(schedule_service):
    async def scenario():
        yesterday = PriorityAction(ActionType.ADD, title="Email")
        await schedule_service.mutate_priorities("u1", PeriodKind.DAY, "2025-03-14", yesterday, confirmed=True)
        first = await schedule_service.import_unfinished("u1", PeriodKind.DAY, "2025-03-15")
        second = await schedule_service.import_unfinished("u1", PeriodKind.DAY, "2025-03-15")
        status = await schedule_service.month_day_status("u1", "2025-03")
        return first, second, status

    first, second, status = asyncio.run(scenario())
    assert (first, second) == (1, 0)
    assert status["2025-03-15"].total == 1
    assert status["2025-03-14"].total == 1


# ===== SERVICE MANAGER =====

def test_service_manager_wires_services(clock):
    manager = ServiceManager()
    assert manager.initialize_services(store=InMemoryDocumentStore(), clock=clock, timezone="UTC")
    assert manager.health_check()["status"] == "healthy"
    assert manager.get_services_info()["services"]["store"] == "InMemoryDocumentStore"

    asyncio.run(manager.close_services())
    assert not manager.initialized
    assert manager.health_check()["status"] == "error"
