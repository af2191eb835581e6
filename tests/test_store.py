import pytest

from triviabuzz.errors import Conflict, InvariantViolation, NotFound
from triviabuzz.models import BUZZES, GAMES, TEAMS
from triviabuzz.store import MemoryStore


@pytest.fixture
def events():
    return []


async def test_insert_applies_defaults(store):
    row = await store.insert(TEAMS, {"id": "t1", "game_id": "G", "name": "A"})
    assert row["score"] == 0
    assert row["ready"] is False
    assert row["sound_type"] == "buzzer"
    assert "created_at" in row


async def test_buzzes_get_increasing_ids(store):
    first = await store.insert(BUZZES, {"game_id": "G", "team_id": "a", "team_name": "A", "timestamp": 1})
    second = await store.insert(BUZZES, {"game_id": "G", "team_id": "b", "team_name": "B", "timestamp": 1})
    assert second["id"] > first["id"]


async def test_team_name_unique_per_game(store):
    await store.insert(TEAMS, {"id": "t1", "game_id": "G", "name": "A"})
    with pytest.raises(Conflict):
        await store.insert(TEAMS, {"id": "t2", "game_id": "G", "name": "A"})
    # Même nom, autre partie: accepté
    await store.insert(TEAMS, {"id": "t3", "game_id": "H", "name": "A"})
    with pytest.raises(Conflict):
        await store.insert(TEAMS, {"id": "t1", "game_id": "H", "name": "Z"})


async def test_update_and_missing_row(store):
    await store.insert(GAMES, {"id": "G", "host_id": "h"})
    await store.update(GAMES, "G", {"is_started": True})
    assert (await store.get(GAMES, {"id": "G"}))["is_started"] is True
    with pytest.raises(NotFound):
        await store.update(GAMES, "NOPE", {"is_started": True})


async def test_unknown_relation(store):
    with pytest.raises(InvariantViolation):
        await store.select("players")


async def test_select_returns_copies(store):
    await store.insert(GAMES, {"id": "G", "host_id": "h"})
    row = await store.get(GAMES, {"id": "G"})
    row["categories"].append("x")
    assert (await store.get(GAMES, {"id": "G"}))["categories"] == []


async def test_notifications_in_commit_order(store, events):
    await store.subscribe(
        GAMES,
        {"id": "G"},
        on_insert=lambda r: events.append(("insert", r["show_answer"])),
        on_update=lambda r: events.append(("update", r["show_answer"])),
        on_delete=lambda r: events.append(("delete", r["id"])),
    )
    await store.insert(GAMES, {"id": "G", "host_id": "h"})
    await store.insert(GAMES, {"id": "OTHER", "host_id": "h"})
    await store.update(GAMES, "G", {"show_answer": True})
    await store.update(GAMES, "G", {"show_answer": False})
    await store.delete(GAMES, {"id": "G"})
    assert events == [
        ("insert", False),
        ("update", True),
        ("update", False),
        ("delete", "G"),
    ]


async def test_delete_publishes_one_event_per_row(store, events):
    await store.subscribe(BUZZES, {"game_id": "G"}, on_delete=lambda r: events.append(r["team_id"]))
    for team_id in ("a", "b"):
        await store.insert(BUZZES, {"game_id": "G", "team_id": team_id, "team_name": team_id, "timestamp": 0})
    await store.delete(BUZZES, {"game_id": "G"})
    assert events == ["a", "b"]
    assert await store.select(BUZZES) == []


async def test_closed_subscription_gets_nothing(store, events):
    sub = await store.subscribe(GAMES, None, on_insert=events.append)
    assert store.subscription_count == 1
    sub.close()
    sub.close()
    assert store.subscription_count == 0
    await store.insert(GAMES, {"id": "G", "host_id": "h"})
    assert events == []


async def test_failing_handler_does_not_break_commit(store, events):
    def boom(_record):
        raise RuntimeError("boom")

    await store.subscribe(GAMES, None, on_insert=boom)
    await store.subscribe(GAMES, None, on_insert=lambda r: events.append(r["id"]))
    await store.insert(GAMES, {"id": "G", "host_id": "h"})
    assert events == ["G"]


async def test_handlers_receive_copies():
    store = MemoryStore()
    seen = []

    def mutate(record):
        record["host_id"] = "changed"
        seen.append(record)

    await store.subscribe(GAMES, None, on_insert=mutate)
    await store.insert(GAMES, {"id": "G", "host_id": "h"})
    assert seen and (await store.get(GAMES, {"id": "G"}))["host_id"] == "h"
