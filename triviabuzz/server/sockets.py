"""Serveur Socket.IO asynchrone (flux de changements du store)."""

from __future__ import annotations

import socketio

# Async Server pour ASGI; le logging passe par le module logging standard
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*", logger=False)
