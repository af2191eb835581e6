import random

import pytest

from conftest import make_bank
from triviabuzz import game as transitions
from triviabuzz.errors import InvariantViolation, NotFound
from triviabuzz.models import BuzzEvent, Game, Team


def make_game(started=True):
    board = transitions.build_board(make_bank(), random.Random(1))
    for cat in board:
        for q in cat.questions:
            q.is_bonus = False
    game = transitions.new_game("ABC123", "host", board)
    game.started = started
    return game


def test_build_board_marks_exactly_two_bonus_cells():
    for seed in range(20):
        board = transitions.build_board(make_bank(), random.Random(seed))
        flagged = [q for cat in board for q in cat.questions if q.is_bonus]
        assert len(flagged) == 2


def test_build_board_rejects_incomplete_category():
    bank = make_bank()
    bank[0]["questions"].pop()
    with pytest.raises(ValueError):
        transitions.build_board(bank)


def test_build_board_rejects_too_many_categories():
    with pytest.raises(ValueError):
        transitions.build_board(make_bank(categories=7))


def test_pick_bonus_cells_distinct_and_in_range():
    cells = transitions.pick_bonus_cells(3, random.Random(4))
    assert len(cells) == 2
    for ci, qi in cells:
        assert 0 <= ci < 3
        assert 0 <= qi < 5


def test_readiness_messages():
    assert transitions.readiness([]) == (False, "Waiting for teams...")
    teams = [Team(id="a", game_id="G", name="A", ready=True), Team(id="b", game_id="G", name="B")]
    assert transitions.readiness(teams) == (False, "Waiting for 1 team to ready up")
    teams[1].ready = True
    assert transitions.readiness(teams) == (True, "Start Game")


def test_start_game_requires_all_teams_ready():
    game = make_game(started=False)
    teams = [Team(id="a", game_id="G", name="A", ready=True), Team(id="b", game_id="G", name="B")]
    with pytest.raises(InvariantViolation):
        transitions.start_game(game, teams)
    assert game.started is False
    teams[1].ready = True
    assert transitions.start_game(game, teams) == {"is_started": True}
    assert transitions.phase(game) == transitions.BOARD


def test_open_question_copies_question_text():
    game = make_game()
    patch = transitions.open_question(game, 1, 2)
    assert patch["show_answer"] is False
    active = game.active_question
    assert (active.value, active.question, active.answer) == (300, "Q12", "A12")
    assert active.buzzer_locked is False and active.buzzed_team is None
    game.board[1].questions[2].question = "changed"
    assert game.active_question.question == "Q12"
    assert transitions.phase(game) == transitions.QUESTION_OPEN


def test_open_question_rejects_used_and_missing_cells():
    game = make_game()
    game.board[0].questions[0].used = True
    with pytest.raises(InvariantViolation):
        transitions.open_question(game, 0, 0)
    with pytest.raises(NotFound):
        transitions.open_question(game, 9, 0)
    with pytest.raises(NotFound):
        transitions.open_question(game, -1, 0)
    assert game.active_question is None


def test_open_question_requires_board_phase():
    game = make_game(started=False)
    with pytest.raises(InvariantViolation):
        transitions.open_question(game, 0, 0)
    game.started = True
    transitions.open_question(game, 0, 0)
    with pytest.raises(InvariantViolation):
        transitions.open_question(game, 0, 1)


def test_lock_reset_and_reveal():
    game = make_game()
    transitions.open_question(game, 0, 0)
    transitions.lock_buzzer(game, BuzzEvent(game_id=game.id, team_id="a", team_name="A", timestamp=3))
    assert transitions.phase(game) == transitions.BUZZED_LOCKED
    transitions.reset_buzzer(game)
    assert game.active_question.buzzed_team is None
    assert transitions.phase(game) == transitions.QUESTION_OPEN
    with pytest.raises(InvariantViolation):
        transitions.reset_buzzer(game)
    transitions.reveal_answer(game)
    assert transitions.phase(game) == transitions.ANSWER_REVEALED


def test_close_question_mark_used_and_repeat():
    game = make_game()
    transitions.open_question(game, 2, 4)
    transitions.reveal_answer(game)
    patch = transitions.close_question(game, mark_used=True)
    assert patch["active_question"] is None
    assert game.board[2].questions[4].used is True
    assert game.show_answer is False
    assert transitions.close_question(game, mark_used=True) is None


def test_close_question_without_marking_keeps_cell_available():
    game = make_game()
    transitions.open_question(game, 0, 1)
    patch = transitions.close_question(game, mark_used=False)
    assert "categories" not in patch
    assert game.board[0].questions[1].used is False


def test_game_record_roundtrip_keeps_bonus_fields():
    game = make_game()
    team = Team(id="a", game_id=game.id, name="A")
    transitions.open_question(game, 0, 0, staking_team=team, stake=400)
    restored = Game.from_record(game.to_record())
    assert restored == game
    assert restored.active_question.buzzer_locked is True
    assert restored.active_question.stake == 400


def test_standings_sorted_by_score():
    teams = [
        Team(id="a", game_id="G", name="A", score=100),
        Team(id="b", game_id="G", name="B", score=-200),
        Team(id="c", game_id="G", name="C", score=700),
    ]
    assert [t.name for t in transitions.standings(teams)] == ["C", "A", "B"]
