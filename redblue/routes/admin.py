# redblue/routes/admin.py

import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from redblue.core.api_tags import APITags
from redblue.core.base_response import BaseResponse
from redblue.core.errors import GameError
from redblue.game.game_manager import GameManager, get_game_manager
from redblue.models.game_session import GameState

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/api/v1", tags=[APITags.ADMIN])


class AdminLoginRequest(BaseModel):
    password: str


class AdminLoginResponse(BaseModel):
    admin_token: str


class AdminTokenRequest(BaseModel):
    admin_token: str


@admin_router.post("/admin/login", response_model=AdminLoginResponse)
async def admin_login(
    request: AdminLoginRequest,
    game_manager: GameManager = Depends(get_game_manager),
) -> AdminLoginResponse:
    try:
        return AdminLoginResponse(admin_token=game_manager.admin_login(request.password))
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error during admin login: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@admin_router.post("/admin/cleanup", response_model=BaseResponse[Dict[str, int]])
async def admin_cleanup(
    request: AdminTokenRequest,
    game_manager: GameManager = Depends(get_game_manager),
) -> BaseResponse[Dict[str, int]]:
    """Remove expired lobbies and terminated games past retention right away"""
    try:
        counts = await game_manager.admin_cleanup(request.admin_token)
        return BaseResponse(message="Cleanup completed", data=counts)
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error during admin cleanup: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@admin_router.get("/games")
async def list_games(
    admin_token: str = Query(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    game_state: Optional[GameState] = Query(None),
    game_manager: GameManager = Depends(get_game_manager),
) -> Dict[str, Any]:
    """Every session held in memory, newest first"""
    try:
        games, found_games = game_manager.list_games(
            admin_token, page=page, page_size=page_size, game_state=game_state
        )
        return {"games": games, "found_games": found_games}
    except GameError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error listing games: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
