from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime

from .game_session import utcnow


class MessageType(str, Enum):
    # Server -> client
    CONNECTED = "connected"
    ROUND_RESOLVED = "round_resolved"
    ROUND_STARTED = "round_started"
    GAME_FINISHED = "game_finished"
    LOBBY_ACTIVE = "lobby_active"
    DISCONNECT = "disconnect"
    RECONNECT = "reconnect"
    LOBBY_CLOSED = "lobby_closed"
    ERROR = "error"
    PONG = "pong"

    # Client -> server
    IDENTIFY = "identify"
    DISCONNECT_EVENT = "disconnect_event"
    PING = "ping"

    # Chat relay, both directions
    CHAT_REQUEST = "chat-request"
    CHAT_AGREE = "chat-agree"
    CHAT_DECLINE = "chat-decline"
    CHAT_MESSAGE = "chat-message"
    CHAT_CLOSE = "chat-close"
    CHAT_INTENT = "chat-intent"


CHAT_MESSAGE_TYPES = frozenset(
    t.value
    for t in (
        MessageType.CHAT_REQUEST,
        MessageType.CHAT_AGREE,
        MessageType.CHAT_DECLINE,
        MessageType.CHAT_MESSAGE,
        MessageType.CHAT_CLOSE,
        MessageType.CHAT_INTENT,
    )
)


class GameEvent(BaseModel):
    """Flat server push; every event carries its `type`"""

    type: MessageType
    game_id: Optional[str] = None
    message: Optional[str] = None

    model_config = {"use_enum_values": True}

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# === Game events === #


class ConnectedEvent(GameEvent):
    type: MessageType = MessageType.CONNECTED
    role: Optional[str] = None
    player_name: Optional[str] = None
    game_state: str
    server_time: datetime = Field(default_factory=utcnow)


class RoundResolvedEvent(GameEvent):
    type: MessageType = MessageType.ROUND_RESOLVED
    round_number: int
    next_round: Optional[int] = Field(
        None, description="Null when the resolved round was the last one"
    )
    timed_out: bool = False
    player1_score: int
    player2_score: int
    rounds: List[Dict[str, Any]]
    game_state: str


class RoundStartedEvent(GameEvent):
    type: MessageType = MessageType.ROUND_STARTED
    round_number: int
    created_at: datetime
    deadline: datetime
    game_state: str


class GameFinishedEvent(GameEvent):
    type: MessageType = MessageType.GAME_FINISHED
    game_state: str
    finish_reason: Optional[str] = None
    player1_score: int
    player2_score: int
    rounds: List[Dict[str, Any]]
    winner: Optional[str] = Field(None, description="Winner's name, null on a tie")


class LobbyActiveEvent(GameEvent):
    type: MessageType = MessageType.LOBBY_ACTIVE
    game_state: str
    player1_name: str
    player2_name: str
    current_round: int


class PresenceEvent(GameEvent):
    player_name: str
    role: str
    game_state: str
    disconnected_at: Optional[datetime] = None
    pause_deadline: Optional[datetime] = None


class LobbyClosedEvent(GameEvent):
    type: MessageType = MessageType.LOBBY_CLOSED


class ErrorEvent(GameEvent):
    type: MessageType = MessageType.ERROR


class PongEvent(GameEvent):
    type: MessageType = MessageType.PONG
    server_time: datetime = Field(default_factory=utcnow)


# === Client messages === #


class ClientMessage(BaseModel):
    """Anything a client sends; unknown fields ride along for chat relay"""

    type: str
    player_name: Optional[str] = None
    token: Optional[str] = None

    model_config = {"extra": "allow"}
