"""État serveur centralisé: le store partagé et les abonnements ouverts par client Socket.IO."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from ..store import MemoryStore, Subscription
from ..sync import UpdateChannel


@dataclass
class ServerState:
    store: MemoryStore = field(default_factory=MemoryStore)
    # (sid, id d'abonnement côté client) -> abonnement store
    subscriptions: Dict[Tuple[str, str], Subscription] = field(default_factory=dict)
    # une file d'émission par sid pour conserver l'ordre des commits
    channels: Dict[str, UpdateChannel] = field(default_factory=dict)

    def reset(self) -> None:
        for sub in self.subscriptions.values():
            sub.close()
        for channel in self.channels.values():
            channel.close()
        self.subscriptions.clear()
        self.channels.clear()
        self.store = MemoryStore()


# instance globale unique
state = ServerState()
