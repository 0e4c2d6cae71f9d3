"""
WebSocket router: live notifications for the signed-in user.

Frontend connects to ws://host/ws/notifications?token=<access_token>.

Server → client:
  {"type": "SNAPSHOT", "unreadCount": 3, "notifications": [...]}   on connect
  {"type": "INSERT"|"UPDATE", "new": {...}, "old": {...}|null, "unreadCount": n}
  {"type": "UNREAD_COUNT", "unreadCount": n}                       after client actions
  "pong"                                                            reply to "ping"

Client → server:
  "ping"
  {"action": "mark_read", "id": "<notification id>"}
  {"action": "mark_all_read"}

Each connection owns one SessionContext, so each connection holds exactly one
subscription, and it is torn down when the socket closes.
"""
import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.dependencies import user_from_token
from app.schemas.auth import SessionIdentity
from app.services.notification_broker import broker
from app.services.session_service import SessionContext, MemorySessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


async def _pump(websocket: WebSocket, session: SessionContext) -> None:
    async for event in session.channel.events():
        message = event.to_message()
        message["unreadCount"] = session.unread_count
        await websocket.send_json(message)


async def _handle_action(websocket: WebSocket, session: SessionContext, data: str) -> None:
    try:
        message = json.loads(data)
    except json.JSONDecodeError:
        await websocket.send_json({"type": "ERROR", "message": "Expected JSON or 'ping'"})
        return

    action = message.get("action") if isinstance(message, dict) else None
    try:
        if action == "mark_read" and message.get("id"):
            await session.channel.mark_as_read(message["id"])
        elif action == "mark_all_read":
            await session.channel.mark_all_as_read()
        else:
            await websocket.send_json({"type": "ERROR", "message": "Unknown action"})
            return
    except HTTPException as exc:
        await websocket.send_json({"type": "ERROR", "message": exc.detail})
        return
    except SQLAlchemyError as exc:
        session.db.rollback()
        logger.error(f"WS action failed: user={session.user.id}, action={action}: {exc}")
        await websocket.send_json({"type": "ERROR", "message": "Something went wrong. Please try again."})
        return
    await websocket.send_json({"type": "UNREAD_COUNT", "unreadCount": session.unread_count})


@router.websocket("/ws/notifications")
async def notifications_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT access token for authentication"),
    db: Session = Depends(get_db),
):
    """
    Connection lifecycle:
      1. Token validated before accept; invalid → close 1008 (Policy Violation)
      2. SessionContext set to the token's identity → channel starts
      3. SNAPSHOT sent, then events streamed until the client disconnects
      4. Session logged out → subscription removed from the broker
    """
    try:
        user = user_from_token(db, token)
    except HTTPException:
        await websocket.close(code=1008, reason="Invalid token")
        return

    await websocket.accept()
    session = SessionContext(db, store=MemorySessionStore(), broker=broker)
    await session.set_user(SessionIdentity.from_user(user))

    pump_task = asyncio.create_task(_pump(websocket, session))
    try:
        await websocket.send_json({
            "type": "SNAPSHOT",
            "unreadCount": session.unread_count,
            "notifications": session.channel.recent,
        })
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
            else:
                await _handle_action(websocket, session, data)
    except WebSocketDisconnect:
        logger.info(f"WS disconnected: user={user.id}")
    finally:
        await session.logout()
        pump_task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await pump_task
