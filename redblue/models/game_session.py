# redblue/models/game_session.py

from abc import ABC, abstractmethod
from pydantic import BaseModel, Field
from typing import Any, Dict, FrozenSet, List, Optional
from enum import Enum
from datetime import datetime, timedelta, timezone

from redblue.core.errors import GameStateError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Choice(str, Enum):
    RED = "RED"
    BLUE = "BLUE"


class GameState(str, Enum):
    waiting = "waiting"
    active = "active"
    pause = "pause"
    finished = "finished"
    abandoned = "abandoned"


class Visibility(str, Enum):
    public = "public"
    private = "private"


class PlayerRole(str, Enum):
    player1 = "player1"
    player2 = "player2"


class ConnectionStatus(str, Enum):
    connected = "connected"
    disconnected = "disconnected"


class FinishReason(str, Enum):
    finish = "finish"
    abandon = "abandon"


TERMINAL_STATES: FrozenSet[GameState] = frozenset(
    {GameState.finished, GameState.abandoned}
)

ALLOWED_TRANSITIONS: Dict[GameState, FrozenSet[GameState]] = {
    GameState.waiting: frozenset({GameState.active}),
    GameState.active: frozenset({GameState.pause, GameState.finished}),
    GameState.pause: frozenset(
        {GameState.active, GameState.finished, GameState.abandoned}
    ),
    GameState.finished: frozenset(),
    GameState.abandoned: frozenset(),
}


def other_role(role: PlayerRole) -> PlayerRole:
    return PlayerRole.player2 if role == PlayerRole.player1 else PlayerRole.player1


class PlayerInfo(BaseModel):
    name: str = Field(..., min_length=3, max_length=16)
    role: PlayerRole
    token: str
    connection: ConnectionStatus = ConnectionStatus.connected
    disconnected_at: Optional[datetime] = None

    model_config = {"use_enum_values": True}

    @property
    def connected(self) -> bool:
        return self.connection == ConnectionStatus.connected


class Round(BaseModel):
    round_number: int = Field(..., ge=1)
    player1_choice: Optional[Choice] = None
    player2_choice: Optional[Choice] = None
    player1_score: int = 0
    player2_score: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    timed_out: bool = False

    model_config = {"use_enum_values": True}

    @property
    def resolved(self) -> bool:
        return self.resolved_at is not None

    def get_choice(self, role: PlayerRole) -> Optional[Choice]:
        return (
            self.player1_choice if role == PlayerRole.player1 else self.player2_choice
        )

    def set_choice(self, role: PlayerRole, choice: Choice):
        if role == PlayerRole.player1:
            self.player1_choice = Choice(choice).value
        else:
            self.player2_choice = Choice(choice).value

    def both_chosen(self) -> bool:
        return self.player1_choice is not None and self.player2_choice is not None

    def deadline(self, time_limit_seconds: float) -> datetime:
        return self.created_at + timedelta(seconds=time_limit_seconds)

    def to_public_dict(self, viewer: Optional[PlayerRole] = None) -> Dict[str, Any]:
        """Serialize the round, hiding choices of an unresolved round from everyone
        except the player who made them"""
        data = self.model_dump(mode="json")
        if not self.resolved:
            for role in PlayerRole:
                key = f"{role.value}_choice"
                data[f"{role.value}_chose"] = data[key] is not None
                if viewer != role:
                    data[key] = None
        return data


class GameSession(BaseModel):
    id: str = Field(..., description="A UUID4 string that uniquely identifies the game session")
    code: str = Field(..., description="Short join code, stored upper-case")
    visibility: Visibility = Visibility.private
    player1: PlayerInfo
    player2: Optional[PlayerInfo] = None
    game_state: GameState = GameState.waiting
    current_round: int = Field(default=0, ge=0)
    player1_score: int = 0
    player2_score: int = 0
    rounds: List[Round] = Field(default_factory=list)
    finish_reason: Optional[FinishReason] = None
    created_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    model_config = {"use_enum_values": True}

    def is_terminal(self) -> bool:
        return GameState(self.game_state) in TERMINAL_STATES

    def can_transition(self, new_state: GameState) -> bool:
        return GameState(new_state) in ALLOWED_TRANSITIONS[GameState(self.game_state)]

    def transition(self, new_state: GameState):
        """Move to `new_state`, rejecting anything the transition table does not allow"""
        if not self.can_transition(new_state):
            raise GameStateError(
                f"Illegal transition from {self.game_state} to {GameState(new_state).value}"
            )
        self.game_state = GameState(new_state).value
        if self.is_terminal():
            self.finished_at = utcnow()

    def get_player_by_role(self, role: PlayerRole) -> Optional[PlayerInfo]:
        return self.player1 if role == PlayerRole.player1 else self.player2

    def get_opponent(self, role: PlayerRole) -> Optional[PlayerInfo]:
        return self.get_player_by_role(other_role(role))

    def players(self) -> List[PlayerInfo]:
        return [p for p in (self.player1, self.player2) if p is not None]

    def is_full(self) -> bool:
        return self.player2 is not None

    def current_round_record(self) -> Optional[Round]:
        if not self.rounds:
            return None
        last = self.rounds[-1]
        return last if last.round_number == self.current_round else None

    def add_scores(self, delta1: int, delta2: int):
        self.player1_score += delta1
        self.player2_score += delta2

    def both_players_connected(self) -> bool:
        return all(player.connected for player in self.players())

    def disconnected_players(self) -> List[PlayerInfo]:
        return [player for player in self.players() if not player.connected]

    def winner(self) -> Optional[PlayerInfo]:
        """Highest scorer of a terminated game, None on a tie or when unfinished"""
        if not self.is_terminal() or self.player2 is None:
            return None
        if self.player1_score == self.player2_score:
            return None
        return self.player1 if self.player1_score > self.player2_score else self.player2

    def to_snapshot(
        self,
        viewer: Optional[PlayerRole] = None,
        round_time_limit_seconds: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Flat, token-free copy of the session as clients observe it"""
        current = self.current_round_record()
        deadline = None
        if (
            current is not None
            and not current.resolved
            and round_time_limit_seconds is not None
        ):
            deadline = current.deadline(round_time_limit_seconds).isoformat()

        return {
            "id": self.id,
            "code": self.code,
            "visibility": self.visibility,
            "game_state": self.game_state,
            "finish_reason": self.finish_reason,
            "current_round": self.current_round,
            "player1_name": self.player1.name,
            "player2_name": self.player2.name if self.player2 else None,
            "player1_score": self.player1_score,
            "player2_score": self.player2_score,
            "player1_connected": self.player1.connected,
            "player2_connected": self.player2.connected if self.player2 else False,
            "player1_disconnected_at": _iso(self.player1.disconnected_at),
            "player2_disconnected_at": (
                _iso(self.player2.disconnected_at) if self.player2 else None
            ),
            "rounds": [r.to_public_dict(viewer) for r in self.rounds],
            "round_deadline": deadline,
            "created_at": self.created_at.isoformat(),
            "finished_at": _iso(self.finished_at),
        }

    def resolved_rounds(self) -> List[Dict[str, Any]]:
        return [r.to_public_dict() for r in self.rounds if r.resolved]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class AfterGameHandler(ABC):
    async def __call__(self, game: GameSession) -> Any:
        return await self.handle(game)

    @abstractmethod
    async def handle(self, game: GameSession) -> Any:
        """
        Handle the game session after it has terminated.

        Args:
            game: The GameSession object that has finished or been abandoned.

        Returns:
            Any: Result of the handling operation.
        """
        pass
