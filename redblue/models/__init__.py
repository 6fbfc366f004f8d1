from .game_session import (
    AfterGameHandler,
    ALLOWED_TRANSITIONS,
    Choice,
    ConnectionStatus,
    FinishReason,
    GameSession,
    GameState,
    PlayerInfo,
    PlayerRole,
    Round,
    TERMINAL_STATES,
    Visibility,
    other_role,
    utcnow,
)
from .ws_models import *
from .archived_game import ArchivedGame
