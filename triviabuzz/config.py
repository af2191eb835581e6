"""Configuration par variables d'environnement (fichier .env accepté)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .paths import DEFAULT_STATE_DIR, QUESTIONS_PATH


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 4000
    server_url: str = "http://localhost:4000"
    poll_interval: float = 3.0
    questions_path: Path = QUESTIONS_PATH
    questions_url: Optional[str] = None
    state_dir: Path = DEFAULT_STATE_DIR
    log_level: str = "INFO"


def load_settings(env_file: Optional[str] = None) -> Settings:
    load_dotenv(env_file)
    return Settings(
        host=os.getenv("TRIVIA_HOST", "0.0.0.0"),
        port=int(os.getenv("TRIVIA_PORT", "4000")),
        server_url=os.getenv("TRIVIA_SERVER_URL", "http://localhost:4000"),
        poll_interval=float(os.getenv("TRIVIA_POLL_INTERVAL", "3.0")),
        questions_path=Path(os.getenv("TRIVIA_QUESTIONS_PATH", str(QUESTIONS_PATH))),
        questions_url=os.getenv("TRIVIA_QUESTIONS_URL") or None,
        state_dir=Path(os.getenv("TRIVIA_STATE_DIR", str(DEFAULT_STATE_DIR))),
        log_level=os.getenv("TRIVIA_LOG_LEVEL", "INFO").upper(),
    )
