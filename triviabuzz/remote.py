"""Client du serveur de store: opérations en HTTP, changements via Socket.IO."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

import requests
import socketio
from socketio import exceptions as sio_exceptions

from .errors import Conflict, InvariantViolation, NotFound, StoreError, TransientIO
from .store import Filters, Handler, Record, Store, Subscription

logger = logging.getLogger(__name__)

_ERRORS = {
    404: NotFound,
    409: Conflict,
    422: InvariantViolation,
}


class RemoteStore(Store):
    """Store distant.

    Les appels HTTP sont faits avec `requests` dans un thread pour ne pas
    bloquer la boucle. La reconnexion Socket.IO est laissée au client
    python-socketio; à chaque (re)connexion, les abonnements sont renvoyés.
    """

    def __init__(self, base_url: str, timeout: float = 10, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = session or requests.Session()
        self._sio = socketio.AsyncClient(reconnection=True, logger=False)
        self._subscriptions: Dict[str, Subscription] = {}
        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on("change", self._on_change)

    async def connect(self) -> None:
        try:
            await self._sio.connect(self.base_url)
        except sio_exceptions.ConnectionError as e:
            raise TransientIO(f"Connexion Socket.IO impossible: {e}") from e

    async def close(self) -> None:
        for sub in list(self._subscriptions.values()):
            sub.close()
        await self._sio.disconnect()
        self._http.close()

    # --- HTTP ---------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}/api/{path}"
        try:
            resp = await asyncio.to_thread(self._http.request, method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransientIO(str(e)) from e
        if resp.status_code in _ERRORS:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            raise _ERRORS[resp.status_code](detail)
        if resp.status_code >= 500:
            raise TransientIO(f"{method} {url}: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise StoreError(f"{method} {url}: HTTP {resp.status_code}")
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def insert(self, relation: str, record: Record) -> Record:
        return await self._request("POST", relation, json=record)

    async def update(self, relation: str, key: Any, patch: Record) -> None:
        await self._request("PATCH", f"{relation}/{key}", json=patch)

    async def delete(self, relation: str, filters: Filters) -> None:
        await self._request("DELETE", relation, params={"where": json.dumps(filters)})

    async def select(self, relation: str, filters: Optional[Filters] = None) -> List[Record]:
        params = {"where": json.dumps(filters)} if filters else None
        return await self._request("GET", relation, params=params)

    # --- Flux de changements -------------------------------------------

    async def subscribe(
        self,
        relation: str,
        filters: Optional[Filters] = None,
        on_insert: Optional[Handler] = None,
        on_update: Optional[Handler] = None,
        on_delete: Optional[Handler] = None,
    ) -> Subscription:
        sub_id = uuid.uuid4().hex
        sub = Subscription(
            relation,
            filters,
            on_insert=on_insert,
            on_update=on_update,
            on_delete=on_delete,
            on_close=lambda s: self._unsubscribe(sub_id),
        )
        self._subscriptions[sub_id] = sub
        if self._sio.connected:
            await self._send_subscription(sub_id, sub)
        return sub

    async def _send_subscription(self, sub_id: str, sub: Subscription) -> None:
        payload = {"id": sub_id, "relation": sub.relation, "filters": sub.filters}
        try:
            ack = await self._sio.call("subscribe", payload, timeout=self.timeout)
        except (sio_exceptions.TimeoutError, sio_exceptions.BadNamespaceError) as e:
            logger.warning("Abonnement %s non confirmé: %s", sub.relation, e)
            return
        if not ack or not ack.get("ok"):
            raise InvariantViolation((ack or {}).get("error", "abonnement refusé"))

    def _unsubscribe(self, sub_id: str) -> None:
        # Retrait local immédiat: les notifications tardives sont ignorées
        self._subscriptions.pop(sub_id, None)
        if self._sio.connected:
            asyncio.ensure_future(self._sio.emit("unsubscribe", {"id": sub_id}))

    async def _on_connect(self) -> None:
        logger.info("Connecté au flux de changements %s", self.base_url)
        # Hors du handler: l'accusé de réception est lu par la boucle du client
        self._sio.start_background_task(self._resubscribe)

    async def _resubscribe(self) -> None:
        for sub_id, sub in list(self._subscriptions.items()):
            try:
                await self._send_subscription(sub_id, sub)
            except StoreError as e:
                logger.error("Réabonnement %s refusé: %s", sub.relation, e)

    async def _on_disconnect(self, *_args: Any) -> None:
        logger.warning("Flux de changements interrompu, le polling prend le relais")

    async def _on_change(self, data: Dict[str, Any]) -> None:
        sub = self._subscriptions.get(data.get("id", ""))
        if sub is None:
            return
        sub.dispatch(data.get("kind", ""), data.get("record") or {})
