"""Arbitrage des buzz: la première notification observée par l'hôte gagne."""

from __future__ import annotations

import logging
from typing import Optional

from .models import BuzzEvent, Game

logger = logging.getLogger(__name__)


class BuzzArbiter:
    """Décide, pour chaque BuzzEvent reçu, s'il faut verrouiller le buzzer.

    Les horodatages client ne servent qu'à l'affichage: seul l'ordre de
    livraison de l'abonnement de l'hôte compte. Une fois le buzzer verrouillé
    dans le miroir de l'hôte, les buzz suivants sont ignorés jusqu'au reset.
    """

    def __init__(self, game_id: str) -> None:
        self.game_id = game_id
        self.ignored = 0

    def observe(self, game: Optional[Game], buzz: BuzzEvent) -> bool:
        if buzz.game_id != self.game_id or game is None:
            return self._ignore(buzz, "autre partie")
        active = game.active_question
        if active is None:
            # Buzz parti avant la fermeture de la question
            return self._ignore(buzz, "aucune question ouverte")
        if active.stake_confirmed:
            return self._ignore(buzz, "question bonus")
        if active.buzzer_locked:
            return self._ignore(buzz, "buzzer déjà verrouillé")
        logger.info("Buzz gagnant: %s (%s)", buzz.team_name, buzz.team_id)
        return True

    def _ignore(self, buzz: BuzzEvent, reason: str) -> bool:
        self.ignored += 1
        logger.debug("Buzz de %s ignoré: %s", buzz.team_name, reason)
        return False
