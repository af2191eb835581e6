"""Point d'entrée en ligne de commande: serveur, console hôte, console équipe."""

from __future__ import annotations

import argparse
import asyncio
import shlex
from typing import List, Optional

from .config import Settings, load_settings
from .errors import StoreError
from .host import STAKING, HostSession
from .identity import IdentityStore
from .logging_config import configure_logging
from .question_bank import resolve_question_bank
from .remote import RemoteStore
from .staking import max_stake, quick_stakes
from .team import TeamSession, join_game


HOST_HELP = (
    "start | select C Q | stake TEAM AMOUNT | cancel | reveal | reset | "
    "correct | wrong | award TEAM DELTA | close [keep] | board | teams | end | quit"
)
PLAY_HELP = "ready | sound NAME | buzz | status | quit"


async def _prompt(text: str = "> ") -> str:
    return await asyncio.to_thread(input, text)


def render_host(session: HostSession) -> None:
    game = session.game.value
    if game is None:
        return
    print(f"\n=== Partie {game.id} | {session.view} ===")
    if session.view == "lobby":
        for team in session.teams.values():
            print(f"  {'[x]' if team.ready else '[ ]'} {team.name}")
        print(f"  {session.readiness()[1]}")
        return
    for ci, cat in enumerate(game.board):
        cells = " ".join("  --" if q.used else f"{q.value:4d}" for q in cat.questions)
        print(f"  {ci} {cat.name[:14]:<14} {cells}")
    for rank, team in enumerate(session.standings(), 1):
        print(f"  {rank}. {team.name}: {team.score}")
    if session.staking.active:
        pending = session.staking.pending
        print(f"  BONUS! ${pending.question.value} question: stake TEAM AMOUNT")
        for team in session.teams.values():
            print(f"    {team.name}: max {max_stake(team)} (rapides: {quick_stakes(team)})")
    active = game.active_question
    if active is not None:
        print(f"  ${active.value}: {active.question}")
        if active.stake_confirmed:
            print(f"  Mise de {active.staking_team_name}: {active.stake}")
        if active.buzzed_team:
            print(f"  {active.buzzed_team.team_name} a buzzé!")
        if game.show_answer:
            print(f"  Réponse: {active.answer}")


def _find_team(session: HostSession, ref: str) -> str:
    for team in session.teams.values():
        if ref in (team.id, team.name):
            return team.id
    raise StoreError(f"Équipe inconnue: {ref}")


async def _host_command(session: HostSession, args: List[str]) -> bool:
    cmd, rest = args[0], args[1:]
    game = session.game.value
    active = game.active_question if game else None
    if cmd == "start":
        await session.start_game()
    elif cmd == "select":
        if await session.select_question(int(rest[0]), int(rest[1])) == STAKING:
            print("Question bonus: choisir l'équipe et la mise")
    elif cmd == "stake":
        await session.confirm_stake(_find_team(session, rest[0]), int(rest[1]))
    elif cmd == "cancel":
        await session.cancel_staking()
    elif cmd == "reveal":
        await session.reveal_answer()
    elif cmd == "reset":
        await session.reset_buzzer()
    elif cmd in ("correct", "wrong"):
        if active is not None and active.stake_confirmed:
            await session.resolve_bonus(cmd == "correct")
        elif active is not None and active.buzzed_team is not None:
            delta = active.value if cmd == "correct" else -active.value
            await session.award_points(active.buzzed_team.team_id, delta)
        else:
            print("Aucune équipe n'a buzzé")
    elif cmd == "award":
        await session.award_points(_find_team(session, rest[0]), int(rest[1]))
    elif cmd == "close":
        await session.close_question(mark_used=not (rest and rest[0] == "keep"))
    elif cmd in ("board", "teams"):
        pass
    elif cmd == "end":
        await session.end_game()
        return False
    elif cmd == "quit":
        session.close()
        return False
    else:
        print(HOST_HELP)
    return True


def _ring_on_buzz(event: str, _payload: object) -> None:
    if event == "buzz":
        print("\a", end="", flush=True)


async def run_host(settings: Settings, session_name: str) -> None:
    try:
        bank = resolve_question_bank(settings.questions_path, settings.questions_url)
    except (OSError, ValueError) as e:
        print(f"Banque de questions illisible: {e}")
        return
    store = RemoteStore(settings.server_url)
    await store.connect()
    session = HostSession(
        store,
        identities=IdentityStore(settings.state_dir, session_name),
        poll_interval=settings.poll_interval,
        bank=bank,
    )
    session.listeners.append(_ring_on_buzz)
    try:
        try:
            game = await session.open()
        except (StoreError, ValueError) as e:
            print(f"Impossible d'ouvrir la partie: {e}")
            return
        print(f"Code de la partie: {game.id}")
        print(HOST_HELP)
        running = True
        while running:
            render_host(session)
            line = (await _prompt()).strip()
            if not line:
                continue
            try:
                running = await _host_command(session, shlex.split(line))
            except (StoreError, ValueError, IndexError) as e:
                print(f"Erreur: {e}")
    finally:
        session.close()
        await store.close()


def render_team(session: TeamSession) -> None:
    team = session.team.value
    game = session.game.value
    score = team.score if team else 0
    print(f"\n=== {session.identity.team_name} | {score} pts | {session.view} ===")
    if session.view == "waiting_room" and team is not None:
        print(f"  {'Prêts!' if team.ready else 'Pas encore prêts'} | son: {team.sound_type}")
    elif session.view == "buzzing" and game is not None and game.active_question is not None:
        print(f"  Question à ${game.active_question.value}")
        if session.is_winner:
            print("  Vous avez buzzé! Répondez!")
        elif session.has_buzzed:
            print("  Buzz envoyé")
        elif session.buzzed_team_name:
            print(f"  {session.buzzed_team_name} a buzzé en premier")
        elif session.buzzer_enabled:
            print("  Buzzer prêt")
    elif session.view == "ended":
        print("  La partie est terminée")


async def run_play(settings: Settings, session_name: str, code: Optional[str], name: Optional[str]) -> None:
    store = RemoteStore(settings.server_url)
    await store.connect()
    identities = IdentityStore(settings.state_dir, session_name)
    try:
        session = TeamSession.resume(store, identities, poll_interval=settings.poll_interval)
        if session is None or (code and session.game_code != code.upper()):
            if not code or not name:
                print("Indiquez --code et --name pour rejoindre une partie")
                return
            identity = await join_game(store, code, name, identities)
            session = TeamSession(store, identity, poll_interval=settings.poll_interval)
        await session.open()
        print(PLAY_HELP)
        try:
            while session.view != "ended":
                render_team(session)
                line = (await _prompt()).strip()
                if not line:
                    continue
                args = shlex.split(line)
                try:
                    if args[0] == "ready":
                        await session.toggle_ready()
                    elif args[0] == "sound":
                        await session.set_sound(args[1])
                    elif args[0] == "buzz":
                        if not await session.buzz():
                            print("Buzzer indisponible")
                    elif args[0] == "status":
                        await session.poll_now()
                    elif args[0] == "quit":
                        break
                    else:
                        print(PLAY_HELP)
                except (StoreError, IndexError) as e:
                    print(f"Erreur: {e}")
            if session.ended:
                identities.clear()
        finally:
            await session.disconnect()
    except StoreError as e:
        print(f"Erreur: {e}")
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="triviabuzz", description="Quiz multijoueur avec buzzers")
    parser.add_argument("--env-file", default=None, help="fichier .env à charger")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="lance le serveur de store (HTTP + Socket.IO)")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    host = sub.add_parser("host", help="anime une partie")
    host.add_argument("--session", default="host")

    play = sub.add_parser("play", help="rejoint une partie comme équipe")
    play.add_argument("--session", default="team")
    play.add_argument("--code", default=None)
    play.add_argument("--name", default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.env_file)
    configure_logging(settings.log_level)

    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "triviabuzz.server.main:app",
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_level=settings.log_level.lower(),
        )
    elif args.command == "host":
        asyncio.run(run_host(settings, args.session))
    else:
        asyncio.run(run_play(settings, args.session, args.code, args.name))


if __name__ == "__main__":
    main()
