import pytest

from triviabuzz.errors import InvariantViolation
from triviabuzz.models import Question, Team
from triviabuzz.staking import (
    IDLE,
    SELECTING,
    StakingSession,
    max_stake,
    quick_stakes,
    validate_stake,
)


def team(score):
    return Team(id="t", game_id="G", name="T", score=score)


@pytest.mark.parametrize("score,expected", [(0, 500), (-300, 500), (500, 500), (1200, 1200)])
def test_max_stake(score, expected):
    assert max_stake(team(score)) == expected


def test_validate_stake_bounds_for_low_score():
    t = team(200)
    assert validate_stake(t, 100) == 100
    assert validate_stake(t, 500) == 500
    with pytest.raises(InvariantViolation, match=r"Minimum stake is \$100"):
        validate_stake(t, 99)
    with pytest.raises(InvariantViolation, match=r"Maximum stake is \$500"):
        validate_stake(t, 501)


def test_validate_stake_negative_score_can_still_stake():
    assert validate_stake(team(-800), 300) == 300


def test_validate_stake_high_score_allows_all_in():
    t = team(1500)
    assert validate_stake(t, 1500) == 1500
    with pytest.raises(InvariantViolation, match=r"Maximum stake is \$1500"):
        validate_stake(t, 1501)


def test_quick_stakes():
    assert quick_stakes(team(0)) == [100, 200, 300, 500]
    assert quick_stakes(team(900)) == [100, 200, 300, 500, 900]


def test_staking_session_lifecycle():
    session = StakingSession()
    assert session.state == IDLE
    question = Question(value=400, question="q", answer="a", is_bonus=True)
    session.begin(1, 3, question)
    assert session.state == SELECTING
    with pytest.raises(InvariantViolation):
        session.begin(0, 0, question)

    with pytest.raises(InvariantViolation):
        session.confirm(team(0), 50)
    assert session.active

    pending = session.confirm(team(0), 200)
    assert (pending.category_index, pending.question_index) == (1, 3)
    session.finish()
    assert session.state == IDLE


def test_confirm_without_pending_bonus():
    with pytest.raises(InvariantViolation):
        StakingSession().confirm(team(0), 100)
