from .scoring import TOTAL_ROUNDS, score, score_timeout
from .timers import TimerRegistry, ROUND_TIMER, PAUSE_TIMER
from .session_store import SessionStore
from .broadcaster import Broadcaster, Subscriber
from .round_resolver import RoundResolver
from .presence import PresenceMonitor
from .lobby import LobbyManager, validate_player_name
from .after_game_handlers import ArchiveGameAfterGameHandler
from .game_manager import (
    GameManager,
    get_game_manager,
    startup_game_manager,
    shutdown_game_manager,
)
