# redblue/routes/game.py

import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from redblue.core.api_tags import APITags
from redblue.core.base_response import BaseResponse
from redblue.core.errors import GameAuthError, GameError, GameValidationError
from redblue.core.security import parse_bearer
from redblue.game.game_manager import GameManager, get_game_manager
from redblue.models.game_session import Choice, PlayerRole, Visibility

logger = logging.getLogger(__name__)

game_router = APIRouter(prefix="/api/v1", tags=[APITags.GAMES])


class CreateGameRequest(BaseModel):
    player1_name: str
    visibility: Visibility = Visibility.private


class JoinGameRequest(BaseModel):
    player_name: str
    code: str


class SessionTokenResponse(BaseModel):
    game_id: str
    code: str
    role: PlayerRole
    token: str


class ChoiceRequest(BaseModel):
    game_id: str
    round_number: int = Field(..., ge=1)
    player_name: str
    choice: Choice
    token: str


class AbandonRequest(BaseModel):
    game_id: str
    player_name: str
    token: str


def _bearer_token(authorization: Optional[str]) -> str:
    token = parse_bearer(authorization)
    if not token:
        raise GameAuthError("Missing bearer token")
    return token


def _check_body_game_id(path_id: str, body_id: str):
    if path_id != body_id:
        raise GameValidationError("Game id in path and body do not match")


@game_router.post("/game/create", response_model=SessionTokenResponse)
async def create_game(
    request: CreateGameRequest,
    game_manager: GameManager = Depends(get_game_manager),
) -> Dict[str, Any]:
    try:
        return await game_manager.create_game(request.player1_name, request.visibility)
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating game: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@game_router.post("/game/join", response_model=SessionTokenResponse)
async def join_game(
    request: JoinGameRequest,
    game_manager: GameManager = Depends(get_game_manager),
) -> Dict[str, Any]:
    try:
        return await game_manager.join_game(request.player_name, request.code)
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error joining game: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@game_router.get("/games/public")
async def list_public_games(
    game_manager: GameManager = Depends(get_game_manager),
) -> Dict[str, Any]:
    """Public lobbies still waiting for an opponent"""
    return {"games": game_manager.list_public_games()}


@game_router.get("/game/{game_id}")
async def get_game(
    game_id: str,
    authorization: Optional[str] = Header(None),
    game_manager: GameManager = Depends(get_game_manager),
) -> Dict[str, Any]:
    """
    Snapshot of a game for one of its players or an admin.

    A request carrying a player's token also marks that player as reconnected.
    """
    try:
        return await game_manager.get_snapshot(game_id, _bearer_token(authorization))
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error fetching game {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@game_router.post(
    "/game/{game_id}/round/{round_number}/choice",
    response_model=BaseResponse[Dict[str, Any]],
)
async def submit_choice(
    game_id: str,
    round_number: int,
    request: ChoiceRequest,
    game_manager: GameManager = Depends(get_game_manager),
) -> BaseResponse[Dict[str, Any]]:
    try:
        _check_body_game_id(game_id, request.game_id)
        if round_number != request.round_number:
            raise GameValidationError("Round number in path and body do not match")

        round_ = await game_manager.submit_choice(
            session_id=game_id,
            round_number=round_number,
            player_name=request.player_name,
            choice=request.choice,
            token=request.token,
        )
        session = game_manager.get_game_session(game_id)
        role = game_manager.resolve_role(session, request.token)
        return BaseResponse(
            message="Choice recorded",
            data=round_.to_public_dict(viewer=role),
        )
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error submitting choice for game {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@game_router.post("/game/{game_id}/abandon", response_model=BaseResponse[bool])
async def abandon_game(
    game_id: str,
    request: AbandonRequest,
    game_manager: GameManager = Depends(get_game_manager),
) -> BaseResponse[bool]:
    try:
        _check_body_game_id(game_id, request.game_id)
        await game_manager.abandon(game_id, request.player_name, request.token)
        return BaseResponse(message="Game abandoned", data=True)
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error abandoning game {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@game_router.post(
    "/game/{game_id}/change_visibility", response_model=BaseResponse[Visibility]
)
async def change_visibility(
    game_id: str,
    authorization: Optional[str] = Header(None),
    game_manager: GameManager = Depends(get_game_manager),
) -> BaseResponse[Visibility]:
    try:
        visibility = await game_manager.change_visibility(
            game_id, _bearer_token(authorization)
        )
        return BaseResponse(message=f"Game is now {visibility.value}", data=visibility)
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error changing visibility of game {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@game_router.delete("/game/{game_id}/delete", response_model=BaseResponse[bool])
async def delete_lobby(
    game_id: str,
    authorization: Optional[str] = Header(None),
    game_manager: GameManager = Depends(get_game_manager),
) -> BaseResponse[bool]:
    try:
        await game_manager.delete_lobby(game_id, _bearer_token(authorization))
        return BaseResponse(message="Lobby deleted", data=True)
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting lobby {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
