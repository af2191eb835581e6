"""Session hôte: seul écrivain du Game, arbitre des buzz et des mises bonus."""

from __future__ import annotations

import dataclasses
import logging
import random
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import game as transitions
from .arbitration import BuzzArbiter
from .codes import generate_game_code, generate_token
from .errors import InvariantViolation, NotFound, StoreError
from .identity import HostIdentity, IdentityStore
from .models import BUZZES, GAMES, TEAMS, BuzzEvent, Game, Team
from .question_bank import resolve_question_bank
from .staking import StakingSession
from .store import Record, Store, Subscription
from .sync import Mirror, Poller, UpdateChannel

logger = logging.getLogger(__name__)

OPENED = "opened"
STAKING = "staking"

Listener = Callable[[str, Any], None]


class HostSession:
    def __init__(
        self,
        store: Store,
        identities: Optional[IdentityStore] = None,
        poll_interval: float = 3.0,
        bank: Optional[List[Dict[str, Any]]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.identities = identities
        self.poll_interval = poll_interval
        self._bank = bank
        self._rng = rng
        self.game: Mirror[Game] = Mirror()
        self.teams: Dict[str, Team] = {}
        self.staking = StakingSession()
        self.arbiter: Optional[BuzzArbiter] = None
        self.channel = UpdateChannel("host")
        self.listeners: List[Listener] = []
        self._subscriptions: List[Subscription] = []
        self._poller: Optional[Poller] = None
        # Scores écrits par l'hôte et pas encore confirmés par une notification
        self._pending_scores: Dict[str, List[int]] = {}

    # --- Cycle de vie -------------------------------------------------

    @property
    def game_id(self) -> Optional[str]:
        return self.game.value.id if self.game.value else None

    async def open(self) -> Game:
        """Reprend la partie de cette session si elle existe encore, sinon en crée une."""
        self.channel.start()
        game: Optional[Game] = None
        identity = self.identities.load_host() if self.identities else None
        if identity is not None:
            record = await self.store.get(GAMES, {"id": identity.game_id})
            if record is not None and record.get("host_id") == identity.host_id:
                game = Game.from_record(record)
                logger.info("Reprise de la partie %s", game.id)
        if game is None:
            game = await self.create_game()
        self.game.overwrite(game)
        self.arbiter = BuzzArbiter(game.id)
        rows = await self.store.select(TEAMS, {"game_id": game.id})
        self.teams = {r["id"]: Team.from_record(r) for r in rows}
        await self._subscribe(game.id)
        self._poller = Poller(lambda: self.channel.call(self._poll), self.poll_interval, name=f"host:{game.id}")
        self._poller.start()
        return game

    async def create_game(self) -> Game:
        bank = self._bank if self._bank is not None else resolve_question_bank()
        game = transitions.new_game(
            generate_game_code(self._rng),
            generate_token(self._rng),
            transitions.build_board(bank, self._rng),
        )
        await self.store.insert(GAMES, game.to_record())
        if self.identities is not None:
            self.identities.save_host(HostIdentity(game_id=game.id, host_id=game.host_id))
        logger.info("Partie %s créée", game.id)
        return game

    async def _subscribe(self, game_id: str) -> None:
        post = self.channel.post
        self._subscriptions = [
            await self.store.subscribe(
                GAMES,
                {"id": game_id},
                on_update=lambda r: post(self._on_game_update, r),
                on_delete=lambda r: post(self._on_game_deleted, r),
            ),
            await self.store.subscribe(
                TEAMS,
                {"game_id": game_id},
                on_insert=lambda r: post(self._on_team_upsert, r),
                on_update=lambda r: post(self._on_team_upsert, r),
                on_delete=lambda r: post(self._on_team_deleted, r),
            ),
            await self.store.subscribe(
                BUZZES,
                {"game_id": game_id},
                on_insert=lambda r: post(self._on_buzz, r),
            ),
        ]

    def close(self) -> None:
        """Démontage synchrone: abonnements, polling et file locale."""
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions = []
        if self._poller is not None:
            self._poller.stop()
            self._poller = None
        self.channel.close()

    async def settle(self) -> None:
        await self.channel.drain()

    async def poll_now(self) -> None:
        """Relecture immédiate du snapshot, comme le ferait le polling."""
        await self.channel.call(self._poll)

    def _emit(self, event: str, payload: Any = None) -> None:
        for listener in list(self.listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Listener hôte en erreur (%s)", event)

    # --- Notifications entrantes --------------------------------------

    def _on_game_update(self, record: Record) -> None:
        if self.game.apply_remote(Game.from_record(record)):
            self._emit("game", self.game.value)

    def _on_game_deleted(self, _record: Record) -> None:
        logger.warning("Partie %s supprimée du store", self.game_id)
        self._emit("ended")

    def _on_team_upsert(self, record: Record) -> None:
        team = self._merge_team(record)
        self.teams[team.id] = team
        self._emit("teams", self.teams)

    def _merge_team(self, record: Record) -> Team:
        """L'hôte est seul à écrire les scores: tant qu'un score écrit n'est pas confirmé, il prime."""
        team = Team.from_record(record)
        pending = self._pending_scores.get(team.id)
        if pending:
            if team.score in pending:
                del pending[: pending.index(team.score) + 1]
            if pending:
                team.score = pending[-1]
        return team

    def _on_team_deleted(self, record: Record) -> None:
        self.teams.pop(record.get("id"), None)
        self._emit("teams", self.teams)

    async def _on_buzz(self, record: Record) -> None:
        buzz = BuzzEvent.from_record(record)
        if self.arbiter is None or not self.arbiter.observe(self.game.value, buzz):
            return
        game = self._require_game().copy()
        patch = transitions.lock_buzzer(game, buzz)
        await self._write(game, patch)
        self._emit("buzz", buzz)

    async def _poll(self) -> None:
        game_id = self.game_id
        if game_id is None:
            return
        record = await self.store.get(GAMES, {"id": game_id})
        rows = await self.store.select(TEAMS, {"game_id": game_id})
        if record is not None and self.game.reconcile(Game.from_record(record)):
            logger.info("Le polling a détecté un changement de la partie %s", game_id)
            self._emit("game", self.game.value)
        # Lu depuis le canal: toutes les écritures de score sont déjà dans le snapshot
        self._pending_scores.clear()
        fresh = {r["id"]: Team.from_record(r) for r in rows}
        if fresh != self.teams:
            logger.info("Le polling a détecté un changement des équipes")
            self.teams = fresh
            self._emit("teams", self.teams)

    # --- Écritures ----------------------------------------------------

    def _require_game(self) -> Game:
        if self.game.value is None:
            raise InvariantViolation("Aucune partie chargée")
        return self.game.value

    def _team(self, team_id: str) -> Team:
        try:
            return self.teams[team_id]
        except KeyError:
            raise NotFound(f"Équipe {team_id} introuvable") from None

    async def _write(self, game: Game, patch: Dict[str, Any]) -> None:
        self.game.apply_local(game)
        try:
            await self.store.update(GAMES, game.id, patch)
        except StoreError:
            self.game.write_failed()
            raise

    async def _clear_buzzes(self, game_id: str) -> None:
        await self.store.delete(BUZZES, {"game_id": game_id})

    # --- Actions de l'hôte --------------------------------------------

    def readiness(self) -> Tuple[bool, str]:
        return transitions.readiness(self.teams.values())

    def standings(self) -> List[Team]:
        return transitions.standings(self.teams.values())

    @property
    def view(self) -> str:
        game = self.game.value
        if game is None:
            return "loading"
        if not game.started:
            return "lobby"
        if self.staking.active:
            return "staking"
        if game.active_question is not None:
            return "question"
        return "board"

    async def start_game(self) -> None:
        await self.channel.call(self._start_game)

    async def _start_game(self) -> None:
        game = self._require_game().copy()
        patch = transitions.start_game(game, self.teams.values())
        await self._write(game, patch)
        logger.info("Partie %s lancée avec %d équipes", game.id, len(self.teams))

    async def select_question(self, category_index: int, question_index: int) -> str:
        """Ouvre la case, ou passe en sélection de mise si c'est une case bonus."""
        return await self.channel.call(self._select_question, category_index, question_index)

    async def _select_question(self, category_index: int, question_index: int) -> str:
        if self.staking.active:
            raise InvariantViolation("Mise bonus en cours")
        game = self._require_game().copy()
        question = transitions.check_selectable(game, category_index, question_index)
        if question.is_bonus:
            self.staking.begin(category_index, question_index, question)
            self._emit("staking", self.staking.pending)
            return STAKING
        patch = transitions.open_question(game, category_index, question_index)
        await self._clear_buzzes(game.id)
        await self._write(game, patch)
        return OPENED

    async def confirm_stake(self, team_id: str, stake: int) -> None:
        await self.channel.call(self._confirm_stake, team_id, stake)

    async def _confirm_stake(self, team_id: str, stake: int) -> None:
        team = self._team(team_id)
        pending = self.staking.confirm(team, stake)
        game = self._require_game().copy()
        patch = transitions.open_question(
            game, pending.category_index, pending.question_index, staking_team=team, stake=int(stake)
        )
        await self._clear_buzzes(game.id)
        await self._write(game, patch)
        self.staking.finish()
        logger.info("Mise de %s pour %s sur la question bonus", stake, team.name)

    async def cancel_staking(self) -> None:
        await self.channel.call(self.staking.cancel)

    async def reveal_answer(self) -> None:
        await self.channel.call(self._reveal_answer)

    async def _reveal_answer(self) -> None:
        game = self._require_game().copy()
        await self._write(game, transitions.reveal_answer(game))

    async def reset_buzzer(self) -> None:
        await self.channel.call(self._reset_buzzer)

    async def _reset_buzzer(self) -> None:
        game = self._require_game().copy()
        patch = transitions.reset_buzzer(game)
        await self._clear_buzzes(game.id)
        await self._write(game, patch)

    async def award_points(self, team_id: str, delta: int) -> int:
        return await self.channel.call(self._award_points, team_id, delta)

    async def _award_points(self, team_id: str, delta: int) -> int:
        team = self._team(team_id)
        score = team.score + int(delta)
        self.teams[team_id] = dataclasses.replace(team, score=score)
        pending = self._pending_scores.setdefault(team_id, [])
        pending.append(score)
        try:
            await self.store.update(TEAMS, team_id, {"score": score})
        except StoreError:
            if pending and pending[-1] == score:
                pending.pop()
            raise
        self._emit("teams", self.teams)
        return score

    async def close_question(self, mark_used: bool = True) -> bool:
        """Ferme la question courante. Renvoie False si aucune question n'était ouverte."""
        return await self.channel.call(self._close_question, mark_used)

    async def _close_question(self, mark_used: bool) -> bool:
        game = self._require_game().copy()
        active = game.active_question
        if active is not None and active.stake_confirmed:
            mark_used = True
        patch = transitions.close_question(game, mark_used)
        if patch is None:
            logger.debug("Fermeture ignorée: aucune question ouverte")
            return False
        await self._write(game, patch)
        await self._clear_buzzes(game.id)
        return True

    async def resolve_bonus(self, correct: bool) -> int:
        """Applique ±mise à l'équipe qui a misé puis ferme la case (toujours marquée utilisée)."""
        return await self.channel.call(self._resolve_bonus, correct)

    async def _resolve_bonus(self, correct: bool) -> int:
        active = self._require_game().active_question
        if active is None or not active.stake_confirmed or active.staking_team_id is None:
            raise InvariantViolation("Aucune question bonus en cours")
        stake = int(active.stake or 0)
        score = await self._award_points(active.staking_team_id, stake if correct else -stake)
        await self._close_question(True)
        return score

    async def end_game(self) -> None:
        """Supprime toutes les lignes de la partie et oublie l'identité de la session."""
        game_id = self.game_id
        if game_id is not None:
            await self.channel.call(self._end_game, game_id)
        self.close()
        if self.identities is not None:
            self.identities.clear()

    async def _end_game(self, game_id: str) -> None:
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions = []
        await self.store.delete(BUZZES, {"game_id": game_id})
        await self.store.delete(TEAMS, {"game_id": game_id})
        await self.store.delete(GAMES, {"id": game_id})
        logger.info("Partie %s terminée", game_id)
