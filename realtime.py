"""
Realtime project chat over Socket.IO.

Client -> server: joinRoom(projectId), leaveRoom(projectId),
                  sendMessage({projectId, message, userId, userName})
Server -> client: newMessage(message), notification({userId}), error({message})

Room membership lives in one RoomRegistry owned by the ChatChannel; every
handler gets the ConnectionContext of the socket that raised the event.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set

import socketio
from bson import ObjectId
from fastapi import HTTPException
from starlette.concurrency import run_in_threadpool

from chat import post_message
from database import get_db
from security import decode_token
from utils import serialize_doc

logger = logging.getLogger(__name__)

ROOM_PREFIX = "room_"


def room_name(project_id) -> str:
    pid = str(project_id)
    if ObjectId.is_valid(pid):
        # ObjectId accepts either hex case; rooms use the canonical form
        pid = str(ObjectId(pid))
    return f"{ROOM_PREFIX}{pid}"


@dataclass
class ConnectionContext:
    sid: str
    user_id: Optional[str] = None
    rooms: Set[str] = field(default_factory=set)


class RoomRegistry:
    def __init__(self):
        self._connections: Dict[str, ConnectionContext] = {}
        self._rooms: Dict[str, Set[str]] = {}

    def connect(self, sid: str, user_id: Optional[str] = None) -> ConnectionContext:
        ctx = ConnectionContext(sid=sid, user_id=user_id)
        self._connections[sid] = ctx
        return ctx

    def get(self, sid: str) -> Optional[ConnectionContext]:
        return self._connections.get(sid)

    def join(self, sid: str, room: str) -> None:
        ctx = self._connections.get(sid)
        if ctx is None:
            return
        ctx.rooms.add(room)
        self._rooms.setdefault(room, set()).add(sid)

    def leave(self, sid: str, room: str) -> None:
        ctx = self._connections.get(sid)
        if ctx is not None:
            ctx.rooms.discard(room)
        sids = self._rooms.get(room)
        if sids is not None:
            sids.discard(sid)
            if not sids:
                del self._rooms[room]

    def disconnect(self, sid: str) -> Optional[ConnectionContext]:
        ctx = self._connections.get(sid)
        if ctx is None:
            return None
        for room in list(ctx.rooms):
            self.leave(sid, room)
        return self._connections.pop(sid)

    def members(self, room: str) -> List[str]:
        return sorted(self._rooms.get(room, ()))

    def sids_for_user(self, user_id: str) -> List[str]:
        return [sid for sid, ctx in self._connections.items() if ctx.user_id == str(user_id)]

    def __len__(self):
        return len(self._connections)


Emit = Callable[..., Awaitable[None]]


class ChatChannel:
    def __init__(self, emit: Emit, registry: Optional[RoomRegistry] = None, db_getter=get_db):
        self.emit = emit
        self.registry = registry or RoomRegistry()
        self.db_getter = db_getter

    async def on_connect(self, sid: str, auth=None) -> ConnectionContext:
        user_id = None
        if isinstance(auth, dict) and auth.get("token"):
            user_id = decode_token(auth["token"])
            if user_id is None:
                logger.warning("Socket %s presented an invalid token", sid)
        ctx = self.registry.connect(sid, user_id)
        logger.info("User connected: %s (user %s)", sid, user_id or "anonymous")
        return ctx

    async def on_join_room(self, sid: str, project_id) -> None:
        if not project_id:
            logger.error("No projectId provided for joinRoom by %s", sid)
            return
        # membership is only enforced when sending
        room = room_name(project_id)
        self.registry.join(sid, room)
        logger.info("User %s joined %s", sid, room)

    async def on_leave_room(self, sid: str, project_id) -> None:
        if not project_id:
            return
        self.registry.leave(sid, room_name(project_id))
        logger.info("User %s left %s", sid, room_name(project_id))

    async def on_send_message(self, sid: str, data) -> None:
        data = data if isinstance(data, dict) else {}
        project_id = data.get("projectId")
        text = data.get("message")
        user_id = data.get("userId")
        user_name = data.get("userName")
        if not project_id or not text or not user_id or not user_name:
            logger.error("Missing required fields in sendMessage from %s", sid)
            await self._error(sid, "Missing required fields")
            return

        ctx = self.registry.get(sid)
        if ctx is not None and ctx.user_id and ctx.user_id != str(user_id):
            await self._error(sid, "Cannot send messages as another user")
            return

        try:
            db = self.db_getter()
            doc, notified = await run_in_threadpool(
                post_message, db, str(project_id), str(user_id), str(user_name), str(text)
            )
        except HTTPException as e:
            await self._error(sid, e.detail)
            return
        except Exception:
            logger.exception("Error in sendMessage from %s", sid)
            await self._error(sid, "Failed to send message")
            return

        await self.broadcast(room_name(doc["project_id"]), "newMessage", serialize_doc(doc))
        for uid in notified:
            for target in self.registry.sids_for_user(uid):
                await self.emit("notification", {"userId": uid}, to=target)
        logger.info("Message sent in %s by %s", room_name(doc["project_id"]), user_name)

    async def on_disconnect(self, sid: str) -> None:
        self.registry.disconnect(sid)
        logger.info("User disconnected: %s", sid)

    async def broadcast(self, room: str, event: str, data: dict) -> None:
        for sid in self.registry.members(room):
            await self.emit(event, data, to=sid)

    async def _error(self, sid: str, message: str) -> None:
        await self.emit("error", {"message": message}, to=sid)


CORS_ORIGINS = os.getenv("FRONTEND_URL", "*")

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if CORS_ORIGINS == "*" else CORS_ORIGINS.split(","),
    ping_timeout=60,
    ping_interval=25,
)
channel = ChatChannel(sio.emit)


@sio.event
async def connect(sid, environ, auth=None):
    await channel.on_connect(sid, auth)


@sio.on("joinRoom")
async def join_room(sid, project_id):
    await channel.on_join_room(sid, project_id)


@sio.on("leaveRoom")
async def leave_room(sid, project_id):
    await channel.on_leave_room(sid, project_id)


@sio.on("sendMessage")
async def send_message(sid, data):
    await channel.on_send_message(sid, data)


@sio.event
async def disconnect(sid, reason=None):
    await channel.on_disconnect(sid)
