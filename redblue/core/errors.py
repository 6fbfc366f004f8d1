from fastapi import status


class GameError(Exception):
    """Base class for game-related errors, carrying the HTTP status it maps to"""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GameValidationError(GameError):
    status_code = status.HTTP_400_BAD_REQUEST


class GameAuthError(GameError):
    status_code = status.HTTP_401_UNAUTHORIZED


class GameNotFoundError(GameError):
    status_code = status.HTTP_404_NOT_FOUND


class GameConflictError(GameError):
    status_code = status.HTTP_409_CONFLICT


class DuplicateChoiceError(GameConflictError):
    pass


class InvalidRoundError(GameConflictError):
    pass


class GameFullError(GameConflictError):
    pass


class GameStateError(GameError):
    status_code = status.HTTP_409_CONFLICT


class SessionNotActiveError(GameStateError):
    pass


class SessionExpiredError(GameStateError):
    status_code = status.HTTP_410_GONE
