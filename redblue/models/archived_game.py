from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from .game_session import GameSession


class ArchivedGame(BaseModel):
    """One row of the `games` archive table"""

    id: Optional[int] = Field(None, description="Auto-incrementing row ID")
    session_id: str = Field(..., max_length=64)
    code: str = Field(..., max_length=6)
    player1_name: str = Field(..., max_length=16)
    player2_name: Optional[str] = Field(None, max_length=16)
    player1_score: int = 0
    player2_score: int = 0
    rounds_played: int = Field(0, ge=0)
    rounds: List[Dict[str, Any]] = Field(default_factory=list)
    game_state: str
    finish_reason: Optional[str] = None
    winner_name: Optional[str] = Field(None, description="Null on a tie")
    created_at: datetime
    finished_at: Optional[datetime] = None

    @classmethod
    def from_session(cls, game: GameSession) -> "ArchivedGame":
        winner = game.winner()
        resolved = game.resolved_rounds()
        return cls(
            session_id=game.id,
            code=game.code,
            player1_name=game.player1.name,
            player2_name=game.player2.name if game.player2 else None,
            player1_score=game.player1_score,
            player2_score=game.player2_score,
            rounds_played=len(resolved),
            rounds=resolved,
            game_state=game.game_state,
            finish_reason=game.finish_reason,
            winner_name=winner.name if winner else None,
            created_at=game.created_at,
            finished_at=game.finished_at,
        )
