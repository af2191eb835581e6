"""Identité persistée par onglet/session, pour reprendre la même équipe ou partie après un rechargement."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass
class HostIdentity:
    game_id: str
    host_id: str


@dataclass
class TeamIdentity:
    team_id: str
    team_name: str
    game_code: str


class IdentityStore:
    """Un fichier JSON par session nommée (l'équivalent du sessionStorage d'un onglet)."""

    def __init__(self, state_dir: Path, session: str = "default") -> None:
        self.path = Path(state_dir) / f"{_SAFE_NAME.sub('_', session)}.json"

    def _read(self) -> dict:
        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Identité illisible (%s): %s", self.path, e)
            return {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def save_host(self, identity: HostIdentity) -> None:
        self._write({"host": asdict(identity)})

    def load_host(self) -> Optional[HostIdentity]:
        data = self._read().get("host")
        return HostIdentity(**data) if data else None

    def save_team(self, identity: TeamIdentity) -> None:
        self._write({"team": asdict(identity)})

    def load_team(self) -> Optional[TeamIdentity]:
        data = self._read().get("team")
        return TeamIdentity(**data) if data else None

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
