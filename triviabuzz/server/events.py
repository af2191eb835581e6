"""Événements Socket.IO: abonnement des clients au flux de changements du store."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..errors import StoreError
from ..store import DELETE, INSERT, UPDATE, Record
from ..sync import UpdateChannel
from .sockets import sio
from .state import state

logger = logging.getLogger(__name__)


def _channel(sid: str) -> UpdateChannel:
    channel = state.channels.get(sid)
    if channel is None:
        channel = state.channels[sid] = UpdateChannel(f"sid:{sid}")
        channel.start()
    return channel


def _forwarder(sid: str, sub_id: str, relation: str, kind: str):
    channel = _channel(sid)

    async def emit(payload: Dict[str, Any]) -> None:
        await sio.emit("change", payload, to=sid)

    def forward(record: Record) -> None:
        channel.post(emit, {"id": sub_id, "relation": relation, "kind": kind, "record": record})

    return forward


@sio.event
async def connect(sid: str, _environ: Dict[str, Any], _auth: Optional[Any] = None) -> None:
    logger.info("Client %s connecté", sid)


@sio.event
async def disconnect(sid: str, *_args: Any) -> None:
    for key in [k for k in state.subscriptions if k[0] == sid]:
        state.subscriptions.pop(key).close()
    channel = state.channels.pop(sid, None)
    if channel is not None:
        channel.close()
    logger.info("Client %s déconnecté", sid)


@sio.event
async def subscribe(sid: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """{id, relation, filters} -> abonnement; les changements arrivent via l'événement 'change'."""
    sub_id = str(data.get("id", ""))
    relation = data.get("relation", "")
    filters = data.get("filters") or {}
    if not sub_id:
        return {"ok": False, "error": "id d'abonnement manquant"}
    previous = state.subscriptions.pop((sid, sub_id), None)
    if previous is not None:
        previous.close()
    try:
        sub = await state.store.subscribe(
            relation,
            filters,
            on_insert=_forwarder(sid, sub_id, relation, INSERT),
            on_update=_forwarder(sid, sub_id, relation, UPDATE),
            on_delete=_forwarder(sid, sub_id, relation, DELETE),
        )
    except StoreError as e:
        return {"ok": False, "error": str(e)}
    state.subscriptions[(sid, sub_id)] = sub
    logger.debug("Abonnement %s de %s sur %s %s", sub_id, sid, relation, filters)
    return {"ok": True}


@sio.event
async def unsubscribe(sid: str, data: Dict[str, Any]) -> None:
    sub = state.subscriptions.pop((sid, str(data.get("id", ""))), None)
    if sub is not None:
        sub.close()


def register_handlers() -> None:  # pragma: no cover - simple no-op
    """L'import de ce module attache les handlers @sio.event; rien d'autre à faire."""
    return None
