from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Dict, Iterable
import json
import logging
import uuid

from rendezvous.models import (
    JoinRoom,
    LeaveRoom,
    PeerLeft,
    PeerReady,
    RoomFull,
    SignalMessage,
    UserJoined,
    Welcome,
    client_message,
    relayed,
)
from rendezvous.services.rooms import RoomRegistry, registry

logger = logging.getLogger(__name__)

router = APIRouter()

class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, client_id: str):
        await websocket.accept()
        self.active_connections[client_id] = websocket
        logger.info(f"✅ Client {client_id} connected")

    def disconnect(self, client_id: str):
        if self.active_connections.pop(client_id, None) is not None:
            logger.info(f"❌ Client {client_id} disconnected")

    async def send_to_client(self, message: SignalMessage, client_id: str):
        websocket = self.active_connections.get(client_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message.to_wire())
        except Exception as e:
            logger.error(f"❌ Error sending to client {client_id}: {e}")

    async def send_to_clients(self, message: SignalMessage, client_ids: Iterable[str]):
        for client_id in client_ids:
            await self.send_to_client(message, client_id)

    def connection_ids(self) -> list:
        return list(self.active_connections.keys())

manager = ConnectionManager()


class SignalingRelay:
    """Applies client messages to room membership and fans them out."""

    def __init__(self, connections: ConnectionManager, rooms: RoomRegistry):
        self.connections = connections
        self.rooms = rooms

    async def join(self, client_id: str, room_id: str):
        current = self.rooms.room_of(client_id)
        if current is not None and current != room_id:
            await self.leave(client_id)

        result = await self.rooms.join(client_id, room_id)
        if not result.joined:
            logger.warning(f"🚫 Room {room_id} is full, refusing {client_id}")
            await self.connections.send_to_client(RoomFull(room_id=room_id), client_id)
            return

        logger.info(f"User {client_id} joined room {room_id}; other users: {result.others}")
        if not result.others:
            logger.info(f"User {client_id} is the first user in room {room_id}, waiting for peers...")
            return

        # The joiner creates the offer; existing members wait for it
        await self.connections.send_to_client(PeerReady(room_id=room_id), client_id)
        await self.connections.send_to_clients(UserJoined(new_user_id=client_id), result.others)

    async def leave(self, client_id: str):
        left = await self.rooms.leave(client_id)
        if left is None:
            return
        room_id, remaining = left
        logger.info(f"User {client_id} left room {room_id}")
        await self.connections.send_to_clients(PeerLeft(user_id=client_id), remaining)

    async def relay(self, client_id: str, message):
        others = await self.rooms.others(client_id, message.room_id)
        if others is None:
            logger.warning(f"Dropping {message.type} from {client_id}: not a member of room {message.room_id}")
            return
        logger.info(f"📨 {message.type} from {client_id} to room {message.room_id}")
        await self.connections.send_to_clients(relayed(message, client_id), others)

    async def handle(self, client_id: str, raw: str):
        try:
            message = client_message.validate_python(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning(f"⚠️  Dropping malformed message from {client_id}: {e}")
            return

        if isinstance(message, JoinRoom):
            await self.join(client_id, message.room_id)
        elif isinstance(message, LeaveRoom):
            await self.leave(client_id)
        else:
            await self.relay(client_id, message)

relay = SignalingRelay(manager, registry)

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    client_id = uuid.uuid4().hex
    await manager.connect(websocket, client_id)

    try:
        await manager.send_to_client(Welcome(participant_id=client_id), client_id)
        while True:
            data = await websocket.receive_text()
            await relay.handle(client_id, data)

    except WebSocketDisconnect:
        logger.info(f"User disconnected: {client_id}")
    except Exception as e:
        logger.error(f"❌ Error in websocket: {e}")
    finally:
        manager.disconnect(client_id)
        await relay.leave(client_id)
