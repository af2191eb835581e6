"""Réconciliation côté client: file d'événements sérialisée, miroir local, polling de secours."""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from typing import Any, Awaitable, Callable, Generic, List, Optional, Tuple, TypeVar

from .errors import StoreError, TransientIO

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UpdateChannel:
    """File unique par client: notifications, polls et actions passent tous par ici.

    Un seul élément est traité à la fois, ce qui rend chaque mise à jour de
    l'état local atomique vis-à-vis des autres callbacks en attente.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: "asyncio.Queue[Tuple[Callable[..., Any], tuple, Optional[asyncio.Future]]]" = asyncio.Queue()
        self._task: Optional[asyncio.Task[Any]] = None
        self.closed = False

    def start(self) -> None:
        if self._task is None and not self.closed:
            self._task = asyncio.create_task(self._run())

    def post(self, func: Callable[..., Any], *args: Any) -> None:
        """Empile un traitement sans attendre son résultat (callbacks du store)."""
        if self.closed:
            return
        self._queue.put_nowait((func, args, None))

    async def call(self, func: Callable[..., Any], *args: Any) -> Any:
        """Empile un traitement et attend son résultat (actions utilisateur)."""
        if self.closed:
            raise RuntimeError(f"Canal {self.name} fermé")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((func, args, future))
        return await future

    async def _run(self) -> None:
        while True:
            func, args, future = await self._queue.get()
            try:
                result = func(*args)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                if future is None:
                    logger.exception("Erreur pendant le traitement d'un événement (%s)", self.name)
                elif not future.done():
                    future.set_exception(exc)
            else:
                if future is not None and not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Attend que la file soit vide, y compris ce qui a été empilé entre-temps."""
        await self._queue.join()

    def close(self) -> None:
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        while not self._queue.empty():
            _, _, future = self._queue.get_nowait()
            self._queue.task_done()
            if future is not None and not future.done():
                future.cancel()


class Mirror(Generic[T]):
    """Copie locale d'une ligne du store.

    Les écritures du client lui-même sont appliquées tout de suite
    (`apply_local`) et gardées en attente de leur écho. Un écho est reconnu
    à sa valeur: il confirme son écriture et toutes les précédentes (dont
    l'écho a pu se perdre), et ne remplace la copie que s'il n'y a pas
    d'écriture plus récente. Sans écriture en attente, la notification
    écrase la copie (dernier écrivain gagnant).
    """

    def __init__(self, value: Optional[T] = None) -> None:
        self.value: Optional[T] = value
        self._written: List[T] = []

    @property
    def pending(self) -> int:
        return len(self._written)

    def apply_local(self, value: T) -> None:
        self.value = value
        self._written.append(copy.deepcopy(value))

    def write_failed(self) -> None:
        # Pas de rollback: la copie optimiste reste jusqu'à la prochaine notification ou au polling.
        if self._written:
            self._written.pop()

    def apply_remote(self, value: Optional[T]) -> bool:
        if self._written:
            if value not in self._written:
                return False
            del self._written[: self._written.index(value) + 1]
            if self._written:
                return False
        self.value = value
        return True

    def overwrite(self, value: Optional[T]) -> None:
        self.value = value

    def reconcile(self, snapshot: Optional[T]) -> bool:
        """Aligne la copie sur un snapshot lu alors qu'aucune écriture locale n'était en cours.

        Le snapshot contient donc toutes les écritures déjà faites: celles
        qui attendaient encore leur écho sont considérées comme confirmées.
        """
        self._written.clear()
        if snapshot == self.value:
            return False
        self.value = copy.deepcopy(snapshot)
        return True


class Poller:
    """Relit périodiquement l'état complet, en parallèle du flux de notifications.

    `poll` fait la lecture et l'application; les sessions la font passer par
    leur `UpdateChannel` pour qu'aucune écriture locale ne s'intercale entre
    la lecture du snapshot et son application.
    """

    def __init__(self, poll: Callable[[], Awaitable[Any]], interval: float = 3.0, name: str = "poll") -> None:
        self._poll = poll
        self.interval = interval
        self.name = name
        self._task: Optional[asyncio.Task[Any]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()

        async def poll_loop() -> None:
            while True:
                await asyncio.sleep(self.interval)
                await self.poll_once()

        self._task = asyncio.create_task(poll_loop())

    async def poll_once(self) -> None:
        try:
            await self._poll()
        except TransientIO as exc:
            logger.warning("Polling %s: store injoignable (%s)", self.name, exc)
        except StoreError as exc:
            logger.error("Polling %s en échec: %s", self.name, exc)
        except Exception:
            # Ligne malformée, canal fermé...: on réessaie au prochain tick
            logger.exception("Erreur inattendue pendant le polling %s", self.name)

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
