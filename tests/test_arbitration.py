from triviabuzz.arbitration import BuzzArbiter
from triviabuzz.models import ActiveQuestion, BuzzedTeam, BuzzEvent, Game


def buzz(team_id="a", game_id="G", timestamp=10):
    return BuzzEvent(game_id=game_id, team_id=team_id, team_name=team_id.upper(), timestamp=timestamp)


def open_game(**active):
    game = Game(id="G", host_id="h", started=True)
    game.active_question = ActiveQuestion(
        category_index=0, question_index=0, question="q", answer="a", value=100, **active
    )
    return game


def test_first_buzz_on_open_question_wins():
    arbiter = BuzzArbiter("G")
    assert arbiter.observe(open_game(), buzz()) is True
    assert arbiter.ignored == 0


def test_buzz_ignored_when_locked():
    arbiter = BuzzArbiter("G")
    game = open_game(buzzer_locked=True, buzzed_team=BuzzedTeam("a", "A", 5))
    # Un horodatage plus ancien ne change rien
    assert arbiter.observe(game, buzz("b", timestamp=1)) is False
    assert arbiter.ignored == 1


def test_stale_buzz_without_active_question():
    arbiter = BuzzArbiter("G")
    assert arbiter.observe(Game(id="G", host_id="h", started=True), buzz()) is False


def test_buzz_from_other_game_or_bonus():
    arbiter = BuzzArbiter("G")
    assert arbiter.observe(open_game(), buzz(game_id="OTHER")) is False
    assert arbiter.observe(open_game(stake_confirmed=True, buzzer_locked=True), buzz()) is False
    assert arbiter.observe(None, buzz()) is False
    assert arbiter.ignored == 3
