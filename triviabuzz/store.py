"""Interface du store partagé et implémentation en mémoire.

Le store est la seule source de vérité. Chaque écriture est atomique et
notifie les abonnés concernés dans l'ordre des commits; aucun ordre n'est
garanti entre clients distincts au-delà de cela.
"""

from __future__ import annotations

import copy
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import Conflict, InvariantViolation, NotFound
from .models import BUZZES, DEFAULT_SOUND, GAMES, TEAMS

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Filters = Dict[str, Any]
Handler = Callable[[Record], None]

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"


@dataclass
class RelationSchema:
    key: str = "id"
    autoincrement: bool = False
    defaults: Dict[str, Any] = field(default_factory=dict)
    unique: List[Tuple[str, ...]] = field(default_factory=list)


SCHEMA: Dict[str, RelationSchema] = {
    GAMES: RelationSchema(
        defaults={
            "is_started": False,
            "categories": [],
            "active_question": None,
            "show_answer": False,
        },
    ),
    TEAMS: RelationSchema(
        defaults={
            "score": 0,
            "connected": True,
            "sound_type": DEFAULT_SOUND,
            "custom_sound": None,
            "ready": False,
        },
        unique=[("game_id", "name")],
    ),
    BUZZES: RelationSchema(autoincrement=True),
}


def matches(record: Record, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    return all(record.get(k) == v for k, v in filters.items())


class Subscription:
    """Abonnement aux changements d'une relation filtrée.

    `close()` est synchrone: après l'appel, plus aucune notification n'est
    transmise aux handlers, même si elle était déjà en route.
    """

    def __init__(
        self,
        relation: str,
        filters: Optional[Filters],
        on_insert: Optional[Handler] = None,
        on_update: Optional[Handler] = None,
        on_delete: Optional[Handler] = None,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ) -> None:
        self.relation = relation
        self.filters = dict(filters or {})
        self._handlers: Dict[str, Optional[Handler]] = {
            INSERT: on_insert,
            UPDATE: on_update,
            DELETE: on_delete,
        }
        self._on_close = on_close
        self.closed = False

    def dispatch(self, kind: str, record: Record) -> None:
        if self.closed:
            return
        handler = self._handlers.get(kind)
        if handler is None:
            return
        try:
            handler(copy.deepcopy(record))
        except Exception:
            logger.exception("Handler %s en erreur sur %s", kind, self.relation)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close(self)


class Store(ABC):
    """Contrat minimal consommé par les sessions hôte et équipe."""

    @abstractmethod
    async def insert(self, relation: str, record: Record) -> Record: ...

    @abstractmethod
    async def update(self, relation: str, key: Any, patch: Record) -> None: ...

    @abstractmethod
    async def delete(self, relation: str, filters: Filters) -> None: ...

    @abstractmethod
    async def select(self, relation: str, filters: Optional[Filters] = None) -> List[Record]: ...

    async def get(self, relation: str, filters: Filters) -> Optional[Record]:
        rows = await self.select(relation, filters)
        return rows[0] if rows else None

    @abstractmethod
    async def subscribe(
        self,
        relation: str,
        filters: Optional[Filters] = None,
        on_insert: Optional[Handler] = None,
        on_update: Optional[Handler] = None,
        on_delete: Optional[Handler] = None,
    ) -> Subscription: ...


class MemoryStore(Store):
    """Store en mémoire, utilisé par le serveur et par les tests."""

    def __init__(self, schema: Optional[Dict[str, RelationSchema]] = None) -> None:
        self.schema = schema if schema is not None else SCHEMA
        self._rows: Dict[str, Dict[Any, Record]] = {name: {} for name in self.schema}
        self._counters = {name: itertools.count(1) for name in self.schema}
        self._subscriptions: List[Subscription] = []

    def _relation(self, relation: str) -> RelationSchema:
        try:
            return self.schema[relation]
        except KeyError:
            raise InvariantViolation(f"Relation inconnue: {relation}") from None

    def _check_unique(self, relation: str, record: Record, ignore_key: Any = None) -> None:
        schema = self._relation(relation)
        for columns in schema.unique:
            wanted = tuple(record.get(c) for c in columns)
            for key, row in self._rows[relation].items():
                if key == ignore_key:
                    continue
                if tuple(row.get(c) for c in columns) == wanted:
                    raise Conflict(f"{relation}: {', '.join(columns)} déjà utilisé")

    def _publish(self, relation: str, kind: str, record: Record) -> None:
        for sub in list(self._subscriptions):
            if sub.relation == relation and matches(record, sub.filters):
                sub.dispatch(kind, record)

    async def insert(self, relation: str, record: Record) -> Record:
        schema = self._relation(relation)
        row = copy.deepcopy(schema.defaults)
        row.update(copy.deepcopy(record))
        if schema.autoincrement:
            row[schema.key] = next(self._counters[relation])
        key = row.get(schema.key)
        if key is None:
            raise InvariantViolation(f"{relation}: clé '{schema.key}' manquante")
        if key in self._rows[relation]:
            raise Conflict(f"{relation}: {key} existe déjà")
        self._check_unique(relation, row)
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self._rows[relation][key] = row
        self._publish(relation, INSERT, row)
        return copy.deepcopy(row)

    async def update(self, relation: str, key: Any, patch: Record) -> None:
        schema = self._relation(relation)
        current = self._rows[relation].get(key)
        if current is None:
            raise NotFound(f"{relation}: {key} introuvable")
        row = copy.deepcopy(current)
        row.update(copy.deepcopy(patch))
        row[schema.key] = key
        self._check_unique(relation, row, ignore_key=key)
        self._rows[relation][key] = row
        self._publish(relation, UPDATE, row)

    async def delete(self, relation: str, filters: Filters) -> None:
        self._relation(relation)
        rows = self._rows[relation]
        doomed = [key for key, row in rows.items() if matches(row, filters)]
        for key in doomed:
            old = rows.pop(key)
            self._publish(relation, DELETE, old)

    async def select(self, relation: str, filters: Optional[Filters] = None) -> List[Record]:
        self._relation(relation)
        return [copy.deepcopy(row) for row in self._rows[relation].values() if matches(row, filters)]

    async def subscribe(
        self,
        relation: str,
        filters: Optional[Filters] = None,
        on_insert: Optional[Handler] = None,
        on_update: Optional[Handler] = None,
        on_delete: Optional[Handler] = None,
    ) -> Subscription:
        self._relation(relation)
        sub = Subscription(
            relation,
            filters,
            on_insert=on_insert,
            on_update=on_update,
            on_delete=on_delete,
            on_close=self._unsubscribe,
        )
        self._subscriptions.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)
