"""Modèles de données partagés (Game, Team, BuzzEvent) et conversion vers les lignes du store."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

GAMES = "games"
TEAMS = "teams"
BUZZES = "buzzes"

PRESET_SOUNDS: Dict[str, Dict[str, str]] = {
    "buzzer": {"name": "Buzzer", "category": "classic"},
    "bell": {"name": "Bell", "category": "classic"},
    "horn": {"name": "Horn", "category": "classic"},
    "chime": {"name": "Chime", "category": "classic"},
    "airhorn": {"name": "Airhorn", "category": "fun"},
    "boing": {"name": "Boing", "category": "fun"},
    "quack": {"name": "Quack", "category": "fun"},
    "woof": {"name": "Woof", "category": "fun"},
}
DEFAULT_SOUND = "buzzer"
CUSTOM_SOUND = "custom"


@dataclass
class Question:
    value: int
    question: str
    answer: str
    used: bool = False
    is_bonus: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "question": self.question,
            "answer": self.answer,
            "used": self.used,
            "isBonus": self.is_bonus,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Question":
        return cls(
            value=int(data["value"]),
            question=data.get("question", ""),
            answer=data.get("answer", ""),
            used=bool(data.get("used", False)),
            is_bonus=bool(data.get("isBonus", False)),
        )


@dataclass
class Category:
    name: str
    questions: List[Question] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {"name": self.name, "questions": [q.to_record() for q in self.questions]}

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            name=data.get("name", ""),
            questions=[Question.from_record(q) for q in data.get("questions", [])],
        )


@dataclass
class BuzzedTeam:
    team_id: str
    team_name: str
    timestamp: int

    def to_record(self) -> Dict[str, Any]:
        return {"teamId": self.team_id, "teamName": self.team_name, "timestamp": self.timestamp}

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "BuzzedTeam":
        return cls(
            team_id=data["teamId"],
            team_name=data.get("teamName", ""),
            timestamp=int(data.get("timestamp", 0)),
        )


@dataclass
class ActiveQuestion:
    """Question affichée, avec copie dénormalisée du texte et de la valeur."""

    category_index: int
    question_index: int
    question: str
    answer: str
    value: int
    buzzed_team: Optional[BuzzedTeam] = None
    buzzer_locked: bool = False
    is_bonus: bool = False
    stake: Optional[int] = None
    staking_team_id: Optional[str] = None
    staking_team_name: Optional[str] = None
    stake_confirmed: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {
            "categoryIndex": self.category_index,
            "questionIndex": self.question_index,
            "question": self.question,
            "answer": self.answer,
            "value": self.value,
            "buzzedTeam": self.buzzed_team.to_record() if self.buzzed_team else None,
            "buzzerLocked": self.buzzer_locked,
            "isBonus": self.is_bonus,
            "stake": self.stake,
            "stakingTeamId": self.staking_team_id,
            "stakingTeamName": self.staking_team_name,
            "stakeConfirmed": self.stake_confirmed,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "ActiveQuestion":
        buzzed = data.get("buzzedTeam")
        return cls(
            category_index=int(data["categoryIndex"]),
            question_index=int(data["questionIndex"]),
            question=data.get("question", ""),
            answer=data.get("answer", ""),
            value=int(data.get("value", 0)),
            buzzed_team=BuzzedTeam.from_record(buzzed) if buzzed else None,
            buzzer_locked=bool(data.get("buzzerLocked", False)),
            is_bonus=bool(data.get("isBonus", False)),
            stake=data.get("stake"),
            staking_team_id=data.get("stakingTeamId"),
            staking_team_name=data.get("stakingTeamName"),
            stake_confirmed=bool(data.get("stakeConfirmed", False)),
        )

    def same_cell(self, other: Optional["ActiveQuestion"]) -> bool:
        return (
            other is not None
            and other.category_index == self.category_index
            and other.question_index == self.question_index
        )


@dataclass
class Game:
    id: str
    host_id: str
    started: bool = False
    board: List[Category] = field(default_factory=list)
    active_question: Optional[ActiveQuestion] = None
    show_answer: bool = False

    def question_at(self, category_index: int, question_index: int) -> Question:
        return self.board[category_index].questions[question_index]

    def copy(self) -> "Game":
        return copy.deepcopy(self)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "host_id": self.host_id,
            "is_started": self.started,
            "categories": [c.to_record() for c in self.board],
            "active_question": self.active_question.to_record() if self.active_question else None,
            "show_answer": self.show_answer,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Game":
        active = data.get("active_question")
        return cls(
            id=data["id"],
            host_id=data.get("host_id", ""),
            started=bool(data.get("is_started", False)),
            board=[Category.from_record(c) for c in data.get("categories") or []],
            active_question=ActiveQuestion.from_record(active) if active else None,
            show_answer=bool(data.get("show_answer", False)),
        )


@dataclass
class Team:
    id: str
    game_id: str
    name: str
    score: int = 0
    connected: bool = True
    sound_type: str = DEFAULT_SOUND
    custom_sound: Optional[str] = None
    ready: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "game_id": self.game_id,
            "name": self.name,
            "score": self.score,
            "connected": self.connected,
            "sound_type": self.sound_type,
            "custom_sound": self.custom_sound,
            "ready": self.ready,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Team":
        return cls(
            id=data["id"],
            game_id=data["game_id"],
            name=data["name"],
            score=int(data.get("score", 0)),
            connected=bool(data.get("connected", True)),
            sound_type=data.get("sound_type") or DEFAULT_SOUND,
            custom_sound=data.get("custom_sound"),
            ready=bool(data.get("ready", False)),
        )


@dataclass
class BuzzEvent:
    game_id: str
    team_id: str
    team_name: str
    timestamp: int
    id: Optional[int] = None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "game_id": self.game_id,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "timestamp": self.timestamp,
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "BuzzEvent":
        return cls(
            game_id=data["game_id"],
            team_id=data["team_id"],
            team_name=data.get("team_name", ""),
            timestamp=int(data.get("timestamp", 0)),
            id=data.get("id"),
        )
