"""Machine à états de la partie.

Les états ne sont pas un enum: ils se lisent dans les champs du `Game`
(Lobby, plateau visible, question ouverte, buzzer verrouillé, réponse
révélée). Chaque transition valide, modifie le miroir qu'on lui passe et
renvoie le patch à écrire dans le store.
"""

from __future__ import annotations

import random
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .errors import InvariantViolation, NotFound
from .models import ActiveQuestion, BuzzedTeam, BuzzEvent, Category, Game, Question, Team

QUESTIONS_PER_CATEGORY = 5
MAX_CATEGORIES = 6
BONUS_COUNT = 2

LOBBY = "lobby"
BOARD = "board"
QUESTION_OPEN = "question_open"
BUZZED_LOCKED = "buzzed_locked"
ANSWER_REVEALED = "answer_revealed"


def phase(game: Game) -> str:
    if not game.started:
        return LOBBY
    if game.active_question is None:
        return BOARD
    if game.show_answer:
        return ANSWER_REVEALED
    if game.active_question.buzzer_locked:
        return BUZZED_LOCKED
    return QUESTION_OPEN


def pick_bonus_cells(
    category_count: int,
    rng: Optional[random.Random] = None,
    count: int = BONUS_COUNT,
) -> Set[Tuple[int, int]]:
    """Tire `count` cases distinctes (catégorie, ligne) par tirages répétés."""
    rng = rng or random.Random()
    available = category_count * QUESTIONS_PER_CATEGORY
    count = min(count, available)
    chosen: Set[Tuple[int, int]] = set()
    while len(chosen) < count:
        chosen.add((rng.randrange(category_count), rng.randrange(QUESTIONS_PER_CATEGORY)))
    return chosen


def build_board(bank: Iterable[Dict[str, Any]], rng: Optional[random.Random] = None) -> List[Category]:
    board: List[Category] = []
    for raw in bank:
        questions = [
            Question(value=int(q["value"]), question=q["question"], answer=q["answer"])
            for q in raw.get("questions", [])
        ]
        if len(questions) != QUESTIONS_PER_CATEGORY:
            raise ValueError(
                f"La catégorie '{raw.get('name')}' doit contenir {QUESTIONS_PER_CATEGORY} questions"
            )
        board.append(Category(name=raw["name"], questions=questions))
    if not board:
        raise ValueError("Banque de questions vide")
    if len(board) > MAX_CATEGORIES:
        raise ValueError(f"Au plus {MAX_CATEGORIES} catégories par plateau")
    for ci, qi in pick_bonus_cells(len(board), rng):
        board[ci].questions[qi].is_bonus = True
    return board


def new_game(game_id: str, host_id: str, board: List[Category]) -> Game:
    return Game(id=game_id, host_id=host_id, started=False, board=board)


def readiness(teams: Iterable[Team]) -> Tuple[bool, str]:
    """Indique si l'hôte peut lancer la partie, avec le message à afficher."""
    teams = list(teams)
    if not teams:
        return False, "Waiting for teams..."
    waiting = sum(1 for t in teams if not t.ready)
    if waiting:
        return False, f"Waiting for {waiting} team{'s' if waiting != 1 else ''} to ready up"
    return True, "Start Game"


def start_game(game: Game, teams: Iterable[Team]) -> Dict[str, Any]:
    if game.started:
        raise InvariantViolation("La partie a déjà commencé")
    ok, message = readiness(teams)
    if not ok:
        raise InvariantViolation(message)
    game.started = True
    return {"is_started": True}


def check_selectable(game: Game, category_index: int, question_index: int) -> Question:
    if not game.started:
        raise InvariantViolation("La partie n'a pas commencé")
    if game.active_question is not None:
        raise InvariantViolation("Une question est déjà ouverte")
    if category_index < 0 or question_index < 0:
        raise NotFound(f"Case ({category_index}, {question_index}) inexistante")
    try:
        question = game.question_at(category_index, question_index)
    except IndexError:
        raise NotFound(f"Case ({category_index}, {question_index}) inexistante") from None
    if question.used:
        raise InvariantViolation("Question déjà utilisée")
    return question


def open_question(
    game: Game,
    category_index: int,
    question_index: int,
    staking_team: Optional[Team] = None,
    stake: Optional[int] = None,
) -> Dict[str, Any]:
    """Ouvre la case. Avec une mise confirmée, le buzzer reste verrouillé d'emblée."""
    question = check_selectable(game, category_index, question_index)
    active = ActiveQuestion(
        category_index=category_index,
        question_index=question_index,
        question=question.question,
        answer=question.answer,
        value=question.value,
        is_bonus=question.is_bonus,
    )
    if staking_team is not None:
        active.buzzer_locked = True
        active.stake = stake
        active.staking_team_id = staking_team.id
        active.staking_team_name = staking_team.name
        active.stake_confirmed = True
    game.active_question = active
    game.show_answer = False
    return {"active_question": active.to_record(), "show_answer": False}


def reveal_answer(game: Game) -> Dict[str, Any]:
    if game.active_question is None:
        raise InvariantViolation("Aucune question ouverte")
    game.show_answer = True
    return {"show_answer": True}


def lock_buzzer(game: Game, buzz: BuzzEvent) -> Dict[str, Any]:
    active = game.active_question
    if active is None:
        raise InvariantViolation("Aucune question ouverte")
    active.buzzed_team = BuzzedTeam(team_id=buzz.team_id, team_name=buzz.team_name, timestamp=buzz.timestamp)
    active.buzzer_locked = True
    return {"active_question": active.to_record()}


def reset_buzzer(game: Game) -> Dict[str, Any]:
    active = game.active_question
    if active is None or not active.buzzer_locked:
        raise InvariantViolation("Le buzzer n'est pas verrouillé")
    if active.stake_confirmed:
        raise InvariantViolation("Question bonus: seule l'équipe qui a misé peut répondre")
    active.buzzed_team = None
    active.buzzer_locked = False
    return {"active_question": active.to_record()}


def close_question(game: Game, mark_used: bool = True) -> Optional[Dict[str, Any]]:
    """Ferme la question. Renvoie None s'il n'y a rien à fermer (appel répété)."""
    active = game.active_question
    if active is None:
        return None
    patch: Dict[str, Any] = {"active_question": None, "show_answer": False}
    if mark_used:
        game.question_at(active.category_index, active.question_index).used = True
        patch["categories"] = [c.to_record() for c in game.board]
    game.active_question = None
    game.show_answer = False
    return patch


def standings(teams: Iterable[Team]) -> List[Team]:
    return sorted(teams, key=lambda t: t.score, reverse=True)
