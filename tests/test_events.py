import pytest

from triviabuzz.models import GAMES
from triviabuzz.server import events
from triviabuzz.server.sockets import sio
from triviabuzz.server.state import state


@pytest.fixture
def emitted(monkeypatch):
    sent = []

    async def fake_emit(event, data=None, to=None, **kwargs):
        sent.append((event, to, data))

    monkeypatch.setattr(sio, "emit", fake_emit)
    state.reset()
    yield sent
    state.reset()


async def test_changes_are_forwarded_in_commit_order(emitted):
    ack = await events.subscribe("sid1", {"id": "s1", "relation": GAMES, "filters": {"id": "G"}})
    assert ack == {"ok": True}

    await state.store.insert(GAMES, {"id": "G", "host_id": "h"})
    await state.store.update(GAMES, "G", {"show_answer": True})
    await state.store.insert(GAMES, {"id": "OTHER", "host_id": "h"})
    await state.channels["sid1"].drain()

    assert [(e, to, d["kind"], d["id"]) for e, to, d in emitted] == [
        ("change", "sid1", "insert", "s1"),
        ("change", "sid1", "update", "s1"),
    ]
    assert emitted[1][2]["record"]["show_answer"] is True


async def test_subscribe_errors_are_acknowledged(emitted):
    assert (await events.subscribe("sid1", {"relation": GAMES}))["ok"] is False
    ack = await events.subscribe("sid1", {"id": "s1", "relation": "players"})
    assert ack["ok"] is False and "players" in ack["error"]


async def test_unsubscribe_and_disconnect_release_subscriptions(emitted):
    await events.subscribe("sid1", {"id": "s1", "relation": GAMES})
    await events.subscribe("sid1", {"id": "s2", "relation": GAMES})
    assert state.store.subscription_count == 2

    await events.unsubscribe("sid1", {"id": "s1"})
    assert state.store.subscription_count == 1

    await events.disconnect("sid1")
    assert state.store.subscription_count == 0
    assert "sid1" not in state.channels
    await state.store.insert(GAMES, {"id": "G", "host_id": "h"})
    assert emitted == []
