"""WebSocket endpoint — the display's live channel.

Learn: Each display connects to /ws with its JWT (?token=, Bearer header
or the auth cookie). The handler:
1. Authenticates and loads the user before accepting
2. Attaches a ConnectionEventRouter to the event bus
3. Sends the initial SETTINGS and STATE messages
4. Runs two tasks: a sender draining the outbox queue onto the socket,
   and a receiver feeding client commands to the router
5. On disconnect, detaches the router (releasing its poll subscriptions)
"""

import asyncio
import json
import uuid

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from displayhub.auth.dependencies import extract_token, identity_from_token
from displayhub.auth.jwt import TokenError
from displayhub.config import settings
from displayhub.realtime.connections import LiveConnection
from displayhub.realtime.messages import InvalidMessage, parse_command
from displayhub.realtime.router import ConnectionEventRouter
from displayhub.schemas.user import UserRead
from displayhub.services.user_service import UserNotFoundError, UserService

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws")
async def display_websocket(websocket: WebSocket):
    # ── Authentication ──────────────────────────────────────
    token = websocket.query_params.get("token") or extract_token(
        websocket.headers.get("authorization"), websocket.cookies
    )
    if not token:
        await websocket.close(code=4001, reason="Authentication required")
        return
    try:
        identity = identity_from_token(token)
    except TokenError:
        await websocket.close(code=4001, reason="Invalid or expired token")
        return

    runtime = websocket.app.state.runtime
    async with runtime.session_factory() as db:
        try:
            user = await UserService(db).get(identity.user_id)
        except UserNotFoundError:
            await websocket.close(code=4001, reason="Unknown user")
            return
        view = UserRead.from_model(user)

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()

    connection_id = uuid.uuid4().hex
    log = logger.bind(connection_id=connection_id, user_id=str(view.id))
    outbox: asyncio.Queue[str] = asyncio.Queue()

    def send(message: dict) -> None:
        outbox.put_nowait(json.dumps(message))

    conn_router = ConnectionEventRouter(
        connection_id,
        view,
        bus=runtime.bus,
        music=runtime.music,
        weather=runtime.weather,
        send=send,
        location_precision=settings.location_precision,
    )
    conn_router.attach()
    runtime.connections.add(
        LiveConnection(connection_id, str(view.id), view.name, outbox.put_nowait)
    )
    log.info("ws.connected", connections=len(runtime.connections))

    conn_router.send_settings()
    conn_router.send_state()

    async def sender():
        """Forward queued messages to the socket."""
        try:
            while True:
                message = await outbox.get()
                await websocket.send_text(message)
        except (WebSocketDisconnect, RuntimeError):
            pass

    async def receiver():
        """Turn client frames into router commands."""
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            text = message.get("text")
            if text is None:
                conn_router.log.warning("ws.invalid_message", error="binary frame")
                continue
            _handle_frame(conn_router, text, outbox)

    send_task = asyncio.create_task(sender())
    receive_task = asyncio.create_task(receiver())

    try:
        done, pending = await asyncio.wait(
            [send_task, receive_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        conn_router.detach()
        runtime.connections.remove(connection_id)
        log.info("ws.disconnected", connections=len(runtime.connections))
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()


def _handle_frame(conn_router: ConnectionEventRouter, data: str, outbox: asyncio.Queue) -> None:
    try:
        message = json.loads(data)
    except json.JSONDecodeError:
        message = None
    if isinstance(message, dict) and message.get("type") == "ping":
        outbox.put_nowait(json.dumps({"type": "pong"}))
        return

    try:
        command, payload = parse_command(data)
    except InvalidMessage as e:
        conn_router.log.warning("ws.invalid_message", error=str(e))
        return
    conn_router.handle(command, payload)
