from .api_tags import APITags
from .base_response import BaseResponse
from .env import Environment, get_env, initialize_environment, reset_environment
from .errors import (
    GameError,
    GameValidationError,
    GameAuthError,
    GameNotFoundError,
    GameConflictError,
    DuplicateChoiceError,
    InvalidRoundError,
    GameFullError,
    GameStateError,
    SessionNotActiveError,
    SessionExpiredError,
)
