"""Application ASGI combinée: API REST du store + flux Socket.IO."""

from __future__ import annotations

import socketio

from .events import register_handlers
from .http import create_http_app
from .sockets import sio

register_handlers()

fastapi_app = create_http_app()
app = socketio.ASGIApp(sio, fastapi_app)
