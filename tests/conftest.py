import random

import pytest

from triviabuzz.host import HostSession
from triviabuzz.models import Game
from triviabuzz.store import MemoryStore
from triviabuzz.team import TeamSession, join_game

# Pas de polling automatique pendant les tests: on le déclenche via poll_now()
NO_POLL = 3600


def make_bank(categories=6):
    return [
        {
            "name": f"Cat {c}",
            "questions": [
                {"value": (r + 1) * 100, "question": f"Q{c}{r}", "answer": f"A{c}{r}"}
                for r in range(5)
            ],
        }
        for c in range(categories)
    ]


def plain_cells(game: Game):
    return [
        (ci, qi)
        for ci, cat in enumerate(game.board)
        for qi, q in enumerate(cat.questions)
        if not q.is_bonus and not q.used
    ]


def bonus_cells(game: Game):
    return [
        (ci, qi)
        for ci, cat in enumerate(game.board)
        for qi, q in enumerate(cat.questions)
        if q.is_bonus
    ]


class FakeClock:
    def __init__(self, value):
        self.value = value

    def __call__(self):
        return self.value


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def bank():
    return make_bank()


@pytest.fixture
async def host(store, bank):
    session = HostSession(store, poll_interval=NO_POLL, bank=bank, rng=random.Random(7))
    await session.open()
    yield session
    session.close()


@pytest.fixture
async def join(store):
    sessions = []

    async def _join(host, name, ready=True, clock=None):
        identity = await join_game(store, host.game_id, name)
        kwargs = {"poll_interval": NO_POLL}
        if clock is not None:
            kwargs["clock"] = clock
        team = TeamSession(store, identity, **kwargs)
        await team.open()
        if ready:
            await team.toggle_ready()
        sessions.append(team)
        return team

    yield _join
    for team in sessions:
        team.close()


@pytest.fixture
def settle():
    async def _settle(*sessions):
        # Plusieurs passes: chaque file peut en alimenter une autre
        for _ in range(4):
            for session in sessions:
                await session.settle()

    return _settle


@pytest.fixture
async def started(host, join, settle):
    """Partie lancée avec deux équipes prêtes, A et B."""
    team_a = await join(host, "Alpha", clock=FakeClock(5000))
    team_b = await join(host, "Bravo", clock=FakeClock(1000))
    await settle(host, team_a, team_b)
    await host.start_game()
    await settle(host, team_a, team_b)
    return host, team_a, team_b
