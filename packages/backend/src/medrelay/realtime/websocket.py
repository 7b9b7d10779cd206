"""WebSocket endpoint — one connection, one session.

Learn: The handler only moves frames. It registers a Session in the
connection pool, binds the connection id into structlog's contextvars
(so every log line from this connection carries it), then loops on
receive() feeding frames to the session until the client goes away.
Authentication happens inside the protocol ("verify"), not at upgrade
time, so the upgrade itself is always accepted.
"""

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from medrelay.realtime.pool import ConnectionPool
from medrelay.realtime.session import Session

router = APIRouter()


class WebSocketTransport:
    """Adapts a Starlette WebSocket to the session's Transport protocol."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, text: str) -> None:
        await self.websocket.send_text(text)


@router.websocket("/ws")
async def relay_websocket(websocket: WebSocket):
    """Run one relay session over a websocket connection."""
    await websocket.accept()

    state = websocket.app.state
    pool: ConnectionPool = state.pool
    transport = WebSocketTransport(websocket)

    def open_session(connection_id: str) -> Session:
        return Session(
            connection_id,
            transport,
            state.store,
            state.verifier,
            config=state.session_config,
            on_close=pool.unregister,
        )

    connection_id = pool.register(open_session)
    session = pool.get(connection_id)

    # Bound before start() so the session's tasks inherit it
    structlog.contextvars.bind_contextvars(connection_id=connection_id)
    session.start()

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            frame = message.get("text")
            if frame is None:
                frame = message.get("bytes")
            if frame is not None:
                await session.feed(frame)
    except WebSocketDisconnect:
        pass
    finally:
        await session.close()
        structlog.contextvars.unbind_contextvars("connection_id")
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
