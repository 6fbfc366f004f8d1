import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from fastapi import WebSocketDisconnect
from pydantic import BaseModel, Field
from starlette.websockets import WebSocketState

from redblue.models.game_session import PlayerRole, utcnow
from redblue.models.ws_models import GameEvent

logger = logging.getLogger(__name__)

ANONYMOUS_SENDER = "Opponent"


class Subscriber(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    websocket: Any  # fastapi WebSocket
    role: Optional[PlayerRole] = None
    player_name: Optional[str] = None
    connected_at: datetime = Field(default_factory=utcnow)

    model_config = {"use_enum_values": True}

    @property
    def is_observer(self) -> bool:
        return self.role is None


class Broadcaster:
    """
    Per-session registry of WebSocket subscribers.

    Delivery is at-most-once: a subscriber whose send fails is dropped and
    nothing is replayed to it later.
    """

    def __init__(self):
        self.subscribers: Dict[str, Dict[str, Subscriber]] = {}  # session_id -> {id: Subscriber}

    def subscribe(
        self,
        session_id: str,
        websocket: Any,
        role: Optional[PlayerRole] = None,
        player_name: Optional[str] = None,
    ) -> Subscriber:
        subscriber = Subscriber(
            session_id=session_id,
            websocket=websocket,
            role=role,
            player_name=player_name,
        )
        self.subscribers.setdefault(session_id, {})[subscriber.id] = subscriber
        logger.info(
            f"Subscriber {subscriber.id} joined session {session_id} "
            f"as {subscriber.role or 'observer'}"
        )
        return subscriber

    def bind(self, subscriber: Subscriber, role: PlayerRole, player_name: str):
        subscriber.role = PlayerRole(role).value
        subscriber.player_name = player_name
        logger.info(
            f"Subscriber {subscriber.id} identified as {subscriber.role} "
            f"in session {subscriber.session_id}"
        )

    def unsubscribe(self, subscriber: Subscriber) -> bool:
        session_subs = self.subscribers.get(subscriber.session_id)
        if not session_subs or subscriber.id not in session_subs:
            return False
        del session_subs[subscriber.id]
        if not session_subs:
            del self.subscribers[subscriber.session_id]
        logger.info(f"Subscriber {subscriber.id} left session {subscriber.session_id}")
        return True

    def get_subscribers(self, session_id: str) -> List[Subscriber]:
        return list(self.subscribers.get(session_id, {}).values())

    def has_role_subscriber(
        self,
        session_id: str,
        role: PlayerRole,
        exclude: Optional[Subscriber] = None,
    ) -> bool:
        role = PlayerRole(role).value
        return any(
            sub.role == role and (exclude is None or sub.id != exclude.id)
            for sub in self.get_subscribers(session_id)
        )

    async def send(
        self, subscriber: Subscriber, message: Union[GameEvent, Dict[str, Any]]
    ) -> bool:
        payload = message.to_message() if isinstance(message, GameEvent) else message
        websocket = subscriber.websocket

        if websocket.client_state != WebSocketState.CONNECTED:
            self.unsubscribe(subscriber)
            return False

        try:
            await websocket.send_json(payload)
            return True
        except WebSocketDisconnect:
            logger.info(f"Subscriber {subscriber.id} disconnected during send, dropping")
        except Exception as e:
            logger.error(f"Failed to send to subscriber {subscriber.id}: {e}")
        self.unsubscribe(subscriber)
        return False

    async def broadcast(
        self,
        session_id: str,
        message: Union[GameEvent, Dict[str, Any]],
        exclude: Optional[Subscriber] = None,
    ) -> int:
        """Fan out to every subscriber of the session; returns how many were reached"""
        delivered = 0
        for subscriber in self.get_subscribers(session_id):
            if exclude is not None and subscriber.id == exclude.id:
                continue
            if await self.send(subscriber, message):
                delivered += 1

        event_type = message.type if isinstance(message, GameEvent) else message.get("type")
        logger.debug(f"Broadcast {event_type} to {delivered} subscriber(s) of {session_id}")
        return delivered

    async def relay_chat(
        self,
        sender: Subscriber,
        message: Dict[str, Any],
        sender_name: Optional[str] = None,
    ) -> int:
        """
        Forward a chat message to the sender's peers.

        The relayed message is stamped with the bound player's name, else
        `sender_name`, else ANONYMOUS_SENDER.
        """
        name = sender.player_name or sender_name or ANONYMOUS_SENDER
        payload = dict(message)
        payload.pop("token", None)
        # Browser clients put chat text in `sender`
        if payload.get("message") is None and isinstance(payload.get("sender"), str):
            payload["message"] = payload["sender"]
        payload["sender"] = name
        payload["player_name"] = name
        return await self.broadcast(sender.session_id, payload, exclude=sender)

    async def close_session(
        self, session_id: str, message: Optional[GameEvent] = None
    ):
        """Optionally notify, then close and forget every subscriber of the session"""
        for subscriber in self.get_subscribers(session_id):
            if message is not None:
                await self.send(subscriber, message)
            await self._close(subscriber)
        self.subscribers.pop(session_id, None)

    async def shutdown(self):
        for session_id in list(self.subscribers.keys()):
            await self.close_session(session_id)

    async def _close(self, subscriber: Subscriber):
        self.unsubscribe(subscriber)
        try:
            if subscriber.websocket.client_state != WebSocketState.DISCONNECTED:
                await subscriber.websocket.close()
        except Exception as e:
            logger.warning(f"Error closing subscriber {subscriber.id}: {e}")
