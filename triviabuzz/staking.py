"""Questions bonus: choix de l'équipe et de la mise avant ouverture de la question."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .errors import InvariantViolation
from .models import Question, Team

MIN_STAKE = 100
STAKE_FLOOR = 500
QUICK_STAKES = (100, 200, 300, 500)

IDLE = "idle"
SELECTING = "stake_selection"


def max_stake(team: Team) -> int:
    """Une équipe peut toujours miser 500; au-delà, jusqu'à tout son score."""
    return max(team.score, STAKE_FLOOR)


def quick_stakes(team: Optional[Team]) -> List[int]:
    stakes = list(QUICK_STAKES)
    if team is not None and team.score > STAKE_FLOOR:
        stakes.append(team.score)  # all in
    limit = max_stake(team) if team is not None else STAKE_FLOOR
    return [s for s in stakes if s <= limit]


def validate_stake(team: Team, stake: int) -> int:
    try:
        stake = int(stake)
    except (TypeError, ValueError):
        raise InvariantViolation("Mise invalide") from None
    if stake < MIN_STAKE:
        raise InvariantViolation(f"Minimum stake is ${MIN_STAKE}")
    limit = max_stake(team)
    if stake > limit:
        raise InvariantViolation(f"Maximum stake is ${limit}")
    return stake


@dataclass
class PendingBonus:
    category_index: int
    question_index: int
    question: Question


class StakingSession:
    """État local à l'hôte, jamais persisté en cours de négociation."""

    def __init__(self) -> None:
        self.pending: Optional[PendingBonus] = None

    @property
    def state(self) -> str:
        return SELECTING if self.pending is not None else IDLE

    @property
    def active(self) -> bool:
        return self.pending is not None

    def begin(self, category_index: int, question_index: int, question: Question) -> PendingBonus:
        if self.pending is not None:
            raise InvariantViolation("Une mise est déjà en cours")
        self.pending = PendingBonus(category_index, question_index, question)
        return self.pending

    def confirm(self, team: Team, stake: int) -> PendingBonus:
        """Valide la mise; l'appelant ouvre ensuite la question puis appelle `finish()`."""
        if self.pending is None:
            raise InvariantViolation("Aucune question bonus en attente")
        validate_stake(team, stake)
        return self.pending

    def finish(self) -> None:
        self.pending = None

    def cancel(self) -> None:
        self.pending = None
