import asyncio
import json
from datetime import datetime

import pytest
import pytz
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from core.errors import NotFound, PersistenceFailure
from core.models import Habit
from database.json_store import JsonFileDocumentStore
from database.memory_store import InMemoryDocumentStore
from database.redis_store import RedisDocumentStore
from database.store import HABITS, apply_query, merge_documents, owner_collections


def test_merge_documents_is_deep():
    base = {"a": 1, "nested": {"x": 1, "y": 2}, "list": [1, 2]}
    merged = merge_documents(base, {"nested": {"y": 3}, "list": [9]})
    assert merged == {"a": 1, "nested": {"x": 1, "y": 3}, "list": [9]}
    assert base["nested"]["y"] == 2


def test_apply_query_filters_and_orders_missing_last():
    records = [{"id": 1, "n": 2}, {"id": 2}, {"id": 3, "n": 5}, {"id": 4, "n": 1}]
    result = apply_query(records, [("id", "!=", 4)], order_by="n", descending=True)
    assert [r["id"] for r in result] == [3, 1, 2]

    with pytest.raises(ValueError):
        apply_query(records, [("id", "~", 1)])


def test_owner_collections_cover_habits_and_schedules():
    paths = [c.path for c in owner_collections("u1")]
    assert paths == ["habits", "users/u1/daySchedules", "users/u1/weekSchedules",
                     "users/u1/monthSchedules", "users"]


def test_memory_store_crud_and_merge():
    store = InMemoryDocumentStore()

    async def scenario():
        await store.set("c", "k", {"a": 1, "b": {"x": 1}})
        await store.set("c", "k", {"b": {"y": 2}}, merge=True)
        record = await store.get("c", "k")
        record["a"] = 100  # копия, а не ссылка на хранимый документ
        stored = await store.get("c", "k")
        await store.delete("c", "k")
        with pytest.raises(NotFound):
            await store.get("c", "k")
        return stored

    assert asyncio.run(scenario()) == {"a": 1, "b": {"x": 1, "y": 2}}


def test_subscription_receives_changes_until_cancelled():
    store = InMemoryDocumentStore()
    received = []

    async def scenario():
        handle = store.subscribe("c", "k", received.append)
        await store.set("c", "k", {"v": 1})
        await store.delete("c", "k")
        await asyncio.sleep(0.01)
        handle.cancel()
        await store.set("c", "k", {"v": 2})
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert received == [{"v": 1}, None]
    assert store.subscriber_count() == 0


def test_json_store_persists_between_instances(tmp_path):
    async def scenario():
        store = JsonFileDocumentStore(tmp_path)
        await store.set("users/u1/daySchedules", "2025-03-15", {"id": "2025-03-15", "priorities": []})
        await store.set("users/u1/daySchedules", "2025-03-15", {"sleepTime": None}, merge=True)

        reopened = JsonFileDocumentStore(tmp_path)
        return await reopened.get("users/u1/daySchedules", "2025-03-15")

    record = asyncio.run(scenario())
    assert record == {"id": "2025-03-15", "priorities": [], "sleepTime": None}
    assert (tmp_path / "users__u1__daySchedules.json").exists()
    assert not list(tmp_path.glob("*.tmp"))


def test_json_store_moves_corrupted_file_aside(tmp_path):
    (tmp_path / "habits.json").write_text("{not json", encoding="utf-8")

    async def scenario():
        store = JsonFileDocumentStore(tmp_path)
        return await store.query("habits")

    assert asyncio.run(scenario()) == []
    assert len(list(tmp_path.glob("habits.corrupted_*.json"))) == 1


def test_json_store_wraps_serialization_errors(tmp_path):
    async def scenario():
        store = JsonFileDocumentStore(tmp_path)
        await store.set("habits", "h1", {"when": object()})

    with pytest.raises(PersistenceFailure) as info:
        asyncio.run(scenario())
    assert info.value.retryable


class FlakyRedisClient:
    """Минимальный асинхронный клиент: сначала обрыв соединения, затем ответ"""

    def __init__(self, failures, error, payload=None):
        self.failures = failures
        self.error = error
        self.payload = payload
        self.calls = 0

    async def get(self, key):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.payload


def test_redis_store_retries_transient_errors():
    client = FlakyRedisClient(1, RedisConnectionError("reset"), json.dumps({"id": "h1"}))

    async def scenario():
        store = RedisDocumentStore(client=client, prefix="test")
        return await store.get(HABITS, "h1")

    assert asyncio.run(scenario()) == {"id": "h1"}
    assert client.calls == 2


def test_redis_store_maps_errors_to_persistence_failure():
    client = FlakyRedisClient(10, ResponseError("WRONGTYPE"))

    async def scenario():
        store = RedisDocumentStore(client=client, prefix="test")
        assert store._doc_key(HABITS, "h1") == "test:doc:habits:h1"
        await store.get(HABITS, "h1")

    with pytest.raises(PersistenceFailure):
        asyncio.run(scenario())
    assert client.calls == 1


def test_redis_store_missing_document_is_not_found():
    async def scenario():
        store = RedisDocumentStore(client=FlakyRedisClient(0, None, None))
        await store.get(HABITS, "nope")

    with pytest.raises(NotFound):
        asyncio.run(scenario())


class FakePubSub:
    """Pub/sub на очереди: сообщения подаются из теста"""

    def __init__(self):
        self.patterns = []
        self.messages = asyncio.Queue()
        self.closed = False

    async def psubscribe(self, pattern):
        self.patterns.append(pattern)

    async def listen(self):
        while True:
            yield await self.messages.get()

    async def aclose(self):
        self.closed = True


class FakePubSubClient:
    def __init__(self):
        self.connections = []

    def pubsub(self):
        connection = FakePubSub()
        self.connections.append(connection)
        return connection

    async def aclose(self):
        return None


def test_redis_change_feed_shares_one_connection():
    client = FakePubSubClient()
    received = []

    def message(key, data):
        return {"type": "pmessage", "channel": f"test:changes:users/u1/daySchedules:{key}", "data": data}

    async def scenario():
        store = RedisDocumentStore(client=client, prefix="test")
        handles = [
            store.subscribe("users/u1/daySchedules", f"2025-03-{day:02d}", received.append)
            for day in range(1, 32)
        ]
        handles.append(store.subscribe("users/u1/monthSchedules", "2025-03", received.append))
        await asyncio.sleep(0.01)

        feed = client.connections[0]
        feed.messages.put_nowait(message("2025-03-05", "{not json"))
        feed.messages.put_nowait(message("2025-04-01", json.dumps({"id": "other"})))
        feed.messages.put_nowait(message("2025-03-05", json.dumps({"id": "2025-03-05"})))
        await asyncio.sleep(0.01)

        for handle in handles:
            handle.cancel()
        await asyncio.sleep(0.01)
        return feed, store

    feed, store = asyncio.run(scenario())
    assert len(client.connections) == 1
    assert feed.patterns == ["test:changes:*"]
    assert received == [{"id": "2025-03-05"}]
    assert feed.closed
    assert store._listener is None


def test_habit_repository_lists_newest_first_and_skips_corrupt(repositories, store):
    habits, _, _ = repositories

    async def scenario():
        await habits.add(Habit.create("u1", "Old", start_date=datetime(2025, 1, 1)))
        await habits.add(Habit.create("u1", "New", start_date=datetime(2025, 3, 1)))
        await habits.add(Habit.create("u2", "Other"))
        await store.set(HABITS, "broken", {"ownerId": "u1"})
        return await habits.list_for_owner("u1")

    assert [h.title for h in asyncio.run(scenario())] == ["New", "Old"]


def test_profile_repository_creates_and_awards_points(repositories):
    _, _, profiles = repositories
    created = pytz.utc.localize(datetime(2025, 3, 1, 8))

    async def scenario():
        first = await profiles.get_or_create("u1", now=created, timezone="Europe/Moscow")
        second = await profiles.get_or_create("u1", now=datetime(2030, 1, 1))
        total = await profiles.add_points("u1", 12)
        return first, second, total, await profiles.list_owner_ids()

    first, second, total, owners = asyncio.run(scenario())
    assert second.created_at == first.created_at == created
    assert second.timezone == "Europe/Moscow"
    assert total == 12
    assert owners == ["u1"]
