"""Génération des codes de partie et des identifiants opaques."""

from __future__ import annotations

import random
import re
import string
from typing import Optional

GAME_CODE_LENGTH = 6
GAME_CODE_RE = re.compile(r"^[A-Z0-9]{6}$")

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_game_code(rng: Optional[random.Random] = None) -> str:
    # Les collisions sont négligées à cette échelle
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(_CODE_ALPHABET) for _ in range(GAME_CODE_LENGTH))


def generate_token(rng: Optional[random.Random] = None, length: int = 10) -> str:
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(_ID_ALPHABET) for _ in range(length))


def normalize_game_code(code: str) -> str:
    return (code or "").strip().upper()


def is_valid_game_code(code: str) -> bool:
    return bool(GAME_CODE_RE.match(code))
