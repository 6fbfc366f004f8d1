# redblue/routes/ws.py

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from redblue.core.api_tags import APITags
from redblue.core.errors import GameError
from redblue.game.broadcaster import Subscriber
from redblue.game.game_manager import GameManager, get_game_manager
from redblue.models.game_session import PlayerRole
from redblue.models.ws_models import (
    CHAT_MESSAGE_TYPES,
    ClientMessage,
    ConnectedEvent,
    ErrorEvent,
    MessageType,
    PongEvent,
)

logger = logging.getLogger(__name__)

ws_router = APIRouter(tags=[APITags.REALTIME])


async def _identify(
    game_manager: GameManager, subscriber: Subscriber, token: Optional[str]
) -> Optional[PlayerRole]:
    """Bind the subscriber to the player owning `token` and count it as a reconnect"""
    session = game_manager.get_game_session(subscriber.session_id)
    role = game_manager.resolve_role(session, token)
    if role is None:
        await game_manager.broadcaster.send(
            subscriber,
            ErrorEvent(game_id=session.id, message="Invalid token, watching as observer"),
        )
        return None

    player = session.get_player_by_role(role)
    game_manager.broadcaster.bind(subscriber, role, player.name)
    await game_manager.handle_reconnect(session.id, role)
    return role


def _chat_sender_name(
    game_manager: GameManager, subscriber: Subscriber, token: Optional[str]
) -> Optional[str]:
    """Name of the player owning `token`; unidentified sockets may still chat"""
    if subscriber.player_name or not token:
        return subscriber.player_name
    session = game_manager.store.get(subscriber.session_id)
    if session is None:
        return None
    role = game_manager.resolve_role(session, token)
    return session.get_player_by_role(role).name if role else None


async def _handle_message(
    game_manager: GameManager, subscriber: Subscriber, message: ClientMessage
):
    broadcaster = game_manager.broadcaster

    if message.type == MessageType.PING:
        await broadcaster.send(subscriber, PongEvent(game_id=subscriber.session_id))

    elif message.type == MessageType.IDENTIFY:
        await _identify(game_manager, subscriber, message.token)

    elif message.type == MessageType.DISCONNECT_EVENT:
        if message.token:
            _, role = game_manager.authenticate_player(
                subscriber.session_id, message.token, message.player_name
            )
        elif subscriber.role is not None:
            role = PlayerRole(subscriber.role)
        else:
            await broadcaster.send(
                subscriber,
                ErrorEvent(game_id=subscriber.session_id, message="Unknown player"),
            )
            return
        await game_manager.handle_disconnect(subscriber.session_id, role)

    elif message.type in CHAT_MESSAGE_TYPES:
        await broadcaster.relay_chat(
            subscriber,
            message.model_dump(exclude_none=True),
            sender_name=_chat_sender_name(game_manager, subscriber, message.token),
        )

    else:
        await broadcaster.send(
            subscriber,
            ErrorEvent(
                game_id=subscriber.session_id,
                message=f"Unknown message type {message.type}",
            ),
        )


@ws_router.websocket("/ws/game/{game_id}")
async def game_feed(
    websocket: WebSocket,
    game_id: str,
    token: Optional[str] = Query(None),
    game_manager: GameManager = Depends(get_game_manager),
):
    """
    Push feed for one game.
    - Anyone may watch; a valid player token (query string or `identify`
      message) binds the socket to that player
    - A bound socket closing counts as the player disconnecting once no
      other socket of theirs remains
    """
    await websocket.accept()
    broadcaster = game_manager.broadcaster

    session = game_manager.store.get(game_id)
    if session is None:
        await websocket.send_json(
            ErrorEvent(game_id=game_id, message="Game not found").to_message()
        )
        await websocket.close(code=1008)
        return

    subscriber = broadcaster.subscribe(game_id, websocket)
    try:
        if token:
            await _identify(game_manager, subscriber, token)

        session = game_manager.get_game_session(game_id)
        await broadcaster.send(
            subscriber,
            ConnectedEvent(
                game_id=game_id,
                role=subscriber.role,
                player_name=subscriber.player_name,
                game_state=session.game_state,
            ),
        )

        while True:
            raw = await websocket.receive_text()
            try:
                message = ClientMessage.model_validate_json(raw)
            except ValidationError:
                await broadcaster.send(
                    subscriber, ErrorEvent(game_id=game_id, message="Malformed message")
                )
                continue

            try:
                await _handle_message(game_manager, subscriber, message)
            except GameError as e:
                await broadcaster.send(subscriber, ErrorEvent(game_id=game_id, message=str(e)))

    except WebSocketDisconnect:
        logger.info(f"WebSocket closed for game {game_id} (subscriber {subscriber.id})")
    except GameError as e:
        logger.info(f"WebSocket for game {game_id} ended: {e}")
    except Exception as e:
        logger.error(f"Error in game feed {game_id}: {e}")
    finally:
        broadcaster.unsubscribe(subscriber)
        if (
            subscriber.role is not None
            and game_manager.store.get(game_id) is not None
            and not broadcaster.has_role_subscriber(game_id, subscriber.role)
        ):
            try:
                await game_manager.handle_disconnect(game_id, PlayerRole(subscriber.role))
            except GameError as e:
                logger.warning(f"Could not record disconnect for game {game_id}: {e}")
