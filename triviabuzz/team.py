"""Côté équipe: rejoindre une partie, salle d'attente, buzzer."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

from .codes import generate_token, is_valid_game_code, normalize_game_code
from .errors import Conflict, InvariantViolation, NotFound, StoreError
from .identity import IdentityStore, TeamIdentity
from .models import BUZZES, CUSTOM_SOUND, GAMES, PRESET_SOUNDS, TEAMS, BuzzEvent, Game, Team
from .store import Record, Store, Subscription
from .sync import Mirror, Poller, UpdateChannel

logger = logging.getLogger(__name__)

MAX_TEAM_NAME = 20

Listener = Callable[[str, Any], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


async def join_game(
    store: Store,
    code: str,
    name: str,
    identities: Optional[IdentityStore] = None,
) -> TeamIdentity:
    """Crée l'équipe dans la partie `code`.

    Le contrôle d'unicité du nom est fait avant l'insertion; deux équipes
    peuvent le passer en même temps, c'est alors la contrainte du store qui
    refuse la seconde (Conflict).
    """
    code = normalize_game_code(code)
    name = (name or "").strip()
    if not code:
        raise InvariantViolation("Please enter a game code")
    if not is_valid_game_code(code):
        raise InvariantViolation("Game code must be 6 letters or digits")
    if not name:
        raise InvariantViolation("Please enter a team name")
    if len(name) > MAX_TEAM_NAME:
        raise InvariantViolation(f"Team name must be {MAX_TEAM_NAME} characters or less")

    if await store.get(GAMES, {"id": code}) is None:
        raise NotFound("Game not found. Check your game code.")
    if await store.get(TEAMS, {"game_id": code, "name": name}) is not None:
        raise Conflict("Team name already taken. Choose another name.")

    team = Team(id=generate_token(), game_id=code, name=name)
    try:
        await store.insert(TEAMS, team.to_record())
    except Conflict as e:
        raise Conflict("Team name already taken. Choose another name.") from e

    identity = TeamIdentity(team_id=team.id, team_name=name, game_code=code)
    if identities is not None:
        identities.save_team(identity)
    logger.info("Équipe %s a rejoint la partie %s", name, code)
    return identity


class TeamSession:
    def __init__(
        self,
        store: Store,
        identity: TeamIdentity,
        poll_interval: float = 3.0,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.identity = identity
        self.poll_interval = poll_interval
        self._clock = clock
        self.game: Mirror[Game] = Mirror()
        self.team: Mirror[Team] = Mirror()
        self.has_buzzed = False
        self.buzzed_team_name: Optional[str] = None
        self.ended = False
        self.channel = UpdateChannel(f"team:{identity.team_id}")
        self.listeners: List[Listener] = []
        self._subscriptions: List[Subscription] = []
        self._poller: Optional[Poller] = None

    @classmethod
    def resume(cls, store: Store, identities: IdentityStore, **kwargs: Any) -> Optional["TeamSession"]:
        identity = identities.load_team()
        return cls(store, identity, **kwargs) if identity is not None else None

    @property
    def team_id(self) -> str:
        return self.identity.team_id

    @property
    def game_code(self) -> str:
        return self.identity.game_code

    # --- Cycle de vie -------------------------------------------------

    async def open(self) -> None:
        self.channel.start()
        game = await self.store.get(GAMES, {"id": self.game_code})
        if game is None:
            raise NotFound("Game not found. Check your game code.")
        team = await self.store.get(TEAMS, {"id": self.team_id})
        if team is None:
            raise NotFound("Team not found in this game.")
        self._apply_game(Game.from_record(game))
        self.team.overwrite(Team.from_record(team))

        post = self.channel.post
        self._subscriptions = [
            await self.store.subscribe(
                GAMES,
                {"id": self.game_code},
                on_update=lambda r: post(self._on_game_update, r),
                on_delete=lambda r: post(self._on_game_deleted, r),
            ),
            await self.store.subscribe(
                TEAMS,
                {"id": self.team_id},
                on_update=lambda r: post(self._on_team_update, r),
            ),
            await self.store.subscribe(
                BUZZES,
                {"game_id": self.game_code},
                on_insert=lambda r: post(self._on_buzz, r),
            ),
        ]
        if not self.team.value.connected:
            await self._update_team({"connected": True})
        self._poller = Poller(
            lambda: self.channel.call(self._poll), self.poll_interval, name=f"team:{self.team_id}"
        )
        self._poller.start()

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions = []
        if self._poller is not None:
            self._poller.stop()
            self._poller = None
        self.channel.close()

    async def disconnect(self) -> None:
        """Marque l'équipe déconnectée (au mieux) puis démonte la session."""
        if not self.ended:
            try:
                await self.store.update(TEAMS, self.team_id, {"connected": False})
            except StoreError as e:
                logger.warning("Impossible de marquer %s déconnectée: %s", self.identity.team_name, e)
        self.close()

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
                logger.exception("Listener équipe en erreur (%s)", event)

    # --- État dérivé --------------------------------------------------

    @property
    def view(self) -> str:
        game = self.game.value
        if self.ended:
            return "ended"
        if game is None:
            return "loading"
        if not game.started:
            return "waiting_room"
        if game.active_question is None:
            return "watching"
        return "buzzing"

    @property
    def is_winner(self) -> bool:
        game = self.game.value
        active = game.active_question if game else None
        return bool(active and active.buzzed_team and active.buzzed_team.team_id == self.team_id)

    @property
    def buzzer_enabled(self) -> bool:
        game = self.game.value
        if game is None or not game.started or game.active_question is None:
            return False
        return not self.has_buzzed and not game.active_question.buzzer_locked

    # --- Notifications entrantes --------------------------------------

    def _apply_game(self, game: Game) -> None:
        previous = self.game.value.active_question if self.game.value else None
        self.game.overwrite(game)
        active = game.active_question
        if active is None:
            self._reset_buzz_state()
        elif not active.same_cell(previous):
            self._reset_buzz_state()
        elif previous is not None and previous.buzzer_locked and not active.buzzer_locked:
            # Buzzer réinitialisé par l'hôte
            self._reset_buzz_state()
        if active is not None and active.buzzed_team is not None:
            self.buzzed_team_name = active.buzzed_team.team_name
            if active.buzzed_team.team_id == self.team_id:
                self.has_buzzed = True
        self._emit("game", game)

    def _reset_buzz_state(self) -> None:
        self.has_buzzed = False
        self.buzzed_team_name = None

    def _on_game_update(self, record: Record) -> None:
        self._apply_game(Game.from_record(record))

    def _on_game_deleted(self, _record: Record) -> None:
        self._mark_ended()

    def _mark_ended(self) -> None:
        if not self.ended:
            logger.info("La partie %s est terminée", self.game_code)
            self.ended = True
            self._emit("ended")

    def _on_team_update(self, record: Record) -> None:
        self.team.overwrite(Team.from_record(record))
        self._emit("team", self.team.value)

    def _on_buzz(self, record: Record) -> None:
        buzz = BuzzEvent.from_record(record)
        if self.buzzed_team_name is None:
            self.buzzed_team_name = buzz.team_name
        if buzz.team_id == self.team_id:
            self.has_buzzed = True
        self._emit("buzz", buzz)

    async def _poll(self) -> None:
        record = await self.store.get(GAMES, {"id": self.game_code})
        if record is None:
            self._mark_ended()
            return
        snapshot = Game.from_record(record)
        if snapshot != self.game.value:
            logger.info("Le polling a détecté un changement de la partie %s", self.game_code)
            self._apply_game(snapshot)
        active = snapshot.active_question
        if self.has_buzzed and active is not None and not active.buzzer_locked:
            # Verrouillage puis reset entre deux polls, sans notification reçue:
            # notre buzz a été effacé par l'hôte
            mine = await self.store.get(BUZZES, {"game_id": self.game_code, "team_id": self.team_id})
            if mine is None:
                logger.info("Buzzer réinitialisé pendant la perte des notifications")
                self._reset_buzz_state()
                self._emit("game", snapshot)

    # --- Actions de l'équipe ------------------------------------------

    async def buzz(self) -> bool:
        """Tente de buzzer; renvoie False si le buzz n'a pas été envoyé (déjà buzzé, verrouillé...)."""
        return await self.channel.call(self._buzz)

    async def _buzz(self) -> bool:
        if not self.buzzer_enabled:
            return False
        game = self.game.value
        event = BuzzEvent(
            game_id=game.id,
            team_id=self.team_id,
            team_name=self.identity.team_name,
            timestamp=self._clock(),
        )
        await self.store.insert(BUZZES, event.to_record())
        self.has_buzzed = True
        return True

    def _require_lobby(self) -> Team:
        game = self.game.value
        if game is not None and game.started:
            raise InvariantViolation("La partie a déjà commencé")
        if self.team.value is None:
            raise InvariantViolation("Équipe non chargée")
        return self.team.value

    async def _update_team(self, patch: Record) -> None:
        current = Team.from_record({**self.team.value.to_record(), **patch})
        self.team.overwrite(current)
        await self.store.update(TEAMS, self.team_id, patch)

    async def toggle_ready(self) -> bool:
        return await self.channel.call(self._toggle_ready)

    async def _toggle_ready(self) -> bool:
        team = self._require_lobby()
        ready = not team.ready
        await self._update_team({"ready": ready})
        return ready

    async def set_sound(self, sound_type: str, custom_sound: Optional[str] = None) -> None:
        await self.channel.call(self._set_sound, sound_type, custom_sound)

    async def _set_sound(self, sound_type: str, custom_sound: Optional[str]) -> None:
        self._require_lobby()
        if sound_type == CUSTOM_SOUND:
            if not custom_sound:
                raise InvariantViolation("Aucun son enregistré")
        elif sound_type in PRESET_SOUNDS:
            custom_sound = None
        else:
            raise InvariantViolation(f"Son inconnu: {sound_type}")
        await self._update_team({"sound_type": sound_type, "custom_sound": custom_sound})
