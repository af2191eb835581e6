"""Endpoints HTTP (FastAPI): opérations ponctuelles sur le store partagé."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..errors import Conflict, InvariantViolation, NotFound, StoreError, TransientIO
from ..models import BUZZES
from ..store import Store
from .state import state

_STATUS = {
    NotFound: 404,
    Conflict: 409,
    InvariantViolation: 422,
    TransientIO: 503,
}


def _filters(where: Optional[str]) -> Dict[str, Any]:
    """`where` est un objet JSON de filtres d'égalité (les codes de partie peuvent être numériques)."""
    if not where:
        return {}
    try:
        filters = json.loads(where)
    except ValueError:
        raise InvariantViolation("Paramètre where invalide") from None
    if not isinstance(filters, dict):
        raise InvariantViolation("Paramètre where invalide")
    return filters


def _key(relation: str, raw: str) -> Any:
    return int(raw) if relation == BUZZES and raw.isdigit() else raw


def create_http_app(store_provider=lambda: state.store) -> FastAPI:
    app = FastAPI(title="triviabuzz")

    def store() -> Store:
        return store_provider()

    @app.exception_handler(StoreError)
    async def store_error_handler(_request: Request, exc: StoreError) -> JSONResponse:
        status = _STATUS.get(type(exc), 500)
        return JSONResponse({"error": type(exc).__name__, "detail": str(exc)}, status_code=status)

    @app.get("/api/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/{relation}", status_code=201)
    async def insert(relation: str, record: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        return await store().insert(relation, record)

    @app.get("/api/{relation}")
    async def select(relation: str, where: Optional[str] = None) -> List[Dict[str, Any]]:
        return await store().select(relation, _filters(where))

    @app.patch("/api/{relation}/{key}", status_code=204)
    async def update(relation: str, key: str, patch: Dict[str, Any] = Body(...)) -> Response:
        await store().update(relation, _key(relation, key), patch)
        return Response(status_code=204)

    @app.delete("/api/{relation}", status_code=204)
    async def delete(relation: str, where: Optional[str] = None) -> Response:
        filters = _filters(where)
        if not filters:
            raise InvariantViolation("Suppression sans filtre refusée")
        await store().delete(relation, filters)
        return Response(status_code=204)

    return app
