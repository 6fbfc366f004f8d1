import logging
from functools import partial
from typing import Callable, Optional

from redblue.core.errors import (
    DuplicateChoiceError,
    GameNotFoundError,
    GameStateError,
    GameValidationError,
    InvalidRoundError,
    SessionNotActiveError,
)
from redblue.models.game_session import (
    Choice,
    FinishReason,
    GameSession,
    GameState,
    PlayerRole,
    Round,
    utcnow,
)
from redblue.models.ws_models import (
    GameFinishedEvent,
    RoundResolvedEvent,
    RoundStartedEvent,
)
from .broadcaster import Broadcaster
from .scoring import TOTAL_ROUNDS, score, score_timeout
from .session_store import SessionStore
from .timers import ROUND_TIMER, TimerRegistry

logger = logging.getLogger(__name__)


class RoundResolver:
    """
    Drives the round state machine of active sessions.

    `open_round`, `arm_round_timer` and `finish` expect the caller to hold the
    session lock.
    """

    def __init__(
        self,
        store: SessionStore,
        timers: TimerRegistry,
        broadcaster: Broadcaster,
        round_time_limit_seconds: float = 60,
        on_game_over: Optional[Callable[[GameSession], None]] = None,
    ):
        self.store = store
        self.timers = timers
        self.broadcaster = broadcaster
        self.round_time_limit_seconds = round_time_limit_seconds
        self.on_game_over = on_game_over

    def _require_session(self, session_id: str) -> GameSession:
        session = self.store.get(session_id)
        if session is None:
            raise GameNotFoundError("Game not found")
        return session

    async def submit_choice(
        self, session_id: str, role: PlayerRole, round_number: int, choice: Choice
    ) -> Round:
        try:
            choice = Choice(choice)
        except ValueError:
            raise GameValidationError("Choice must be RED or BLUE")

        self._require_session(session_id)
        async with self.store.get_lock(session_id):
            session = self._require_session(session_id)

            if session.game_state != GameState.active:
                if session.game_state == GameState.pause:
                    raise SessionNotActiveError("Game is paused")
                raise SessionNotActiveError("Game is not active")

            current = session.current_round_record()
            if round_number != session.current_round or current is None or current.resolved:
                raise InvalidRoundError(
                    f"Round {round_number} is not the current round ({session.current_round})"
                )

            if current.get_choice(role) is not None:
                raise DuplicateChoiceError("Choice already made for this round")

            current.set_choice(role, choice)
            logger.info(
                f"Session {session_id}: {PlayerRole(role).value} chose in round {round_number}"
            )

            if current.both_chosen():
                await self._resolve_round(session, current, timed_out=False)
            else:
                await self.store.save(session)

            return current.model_copy()

    async def open_round(self, session: GameSession) -> Round:
        """Advance to the next round, arm its timer and announce it"""
        session.current_round += 1
        new_round = Round(round_number=session.current_round)
        session.rounds.append(new_round)
        await self.store.save(session)

        self.arm_round_timer(session, new_round)
        await self.broadcaster.broadcast(
            session.id,
            RoundStartedEvent(
                game_id=session.id,
                round_number=new_round.round_number,
                created_at=new_round.created_at,
                deadline=new_round.deadline(self.round_time_limit_seconds),
                game_state=session.game_state,
                message=f"Round {new_round.round_number} has started.",
            ),
        )
        logger.info(f"Session {session.id}: opened round {new_round.round_number}")
        return new_round

    def arm_round_timer(self, session: GameSession, round_: Round):
        remaining = (
            round_.deadline(self.round_time_limit_seconds) - utcnow()
        ).total_seconds()
        self.timers.schedule(
            session.id,
            ROUND_TIMER,
            remaining,
            partial(self._on_round_timeout, session.id, round_.round_number),
        )

    async def _on_round_timeout(self, session_id: str, round_number: int):
        if self.store.get(session_id) is None:
            return
        async with self.store.get_lock(session_id):
            session = self.store.get(session_id)
            if (
                session is None
                or session.game_state != GameState.active
                or session.current_round != round_number
            ):
                logger.info(
                    f"Ignoring stale round {round_number} timer for session {session_id}"
                )
                return

            current = session.current_round_record()
            if current is None or current.resolved:
                return
            await self._resolve_round(session, current, timed_out=True)

    async def _resolve_round(self, session: GameSession, round_: Round, timed_out: bool):
        if round_.resolved:
            return
        self.timers.cancel(session.id, ROUND_TIMER)

        if timed_out:
            delta1, delta2 = score_timeout(
                round_.round_number, round_.player1_choice, round_.player2_choice
            )
        else:
            delta1, delta2 = score(
                round_.round_number, round_.player1_choice, round_.player2_choice
            )

        round_.player1_score = delta1
        round_.player2_score = delta2
        round_.resolved_at = utcnow()
        round_.timed_out = timed_out
        session.add_scores(delta1, delta2)

        is_last = round_.round_number >= TOTAL_ROUNDS
        logger.info(
            f"Session {session.id}: resolved round {round_.round_number} "
            f"({delta1:+d}/{delta2:+d}{', timed out' if timed_out else ''})"
        )
        await self.store.save(session)

        await self.broadcaster.broadcast(
            session.id,
            RoundResolvedEvent(
                game_id=session.id,
                round_number=round_.round_number,
                next_round=None if is_last else round_.round_number + 1,
                timed_out=timed_out,
                player1_score=session.player1_score,
                player2_score=session.player2_score,
                rounds=session.resolved_rounds(),
                game_state=session.game_state,
            ),
        )

        if is_last:
            await self.finish(
                session, GameState.finished, FinishReason.finish, "Game finished"
            )
        else:
            await self.open_round(session)

    async def finish(
        self,
        session: GameSession,
        state: GameState,
        reason: FinishReason,
        message: str,
    ):
        """Move the session to a terminal state and announce it"""
        session.transition(state)
        session.finish_reason = FinishReason(reason).value
        self.timers.cancel_all(session.id)
        await self.store.save(session)

        winner = session.winner()
        await self.broadcaster.broadcast(
            session.id,
            GameFinishedEvent(
                game_id=session.id,
                game_state=session.game_state,
                finish_reason=session.finish_reason,
                player1_score=session.player1_score,
                player2_score=session.player2_score,
                rounds=session.resolved_rounds(),
                winner=winner.name if winner else None,
                message=message,
            ),
        )
        logger.info(
            f"Session {session.id} ended: {session.game_state} ({session.finish_reason})"
        )

        if self.on_game_over:
            self.on_game_over(session)

    async def surrender(self, session_id: str, role: PlayerRole):
        self._require_session(session_id)
        async with self.store.get_lock(session_id):
            session = self._require_session(session_id)
            if session.game_state not in (GameState.active, GameState.pause):
                raise SessionNotActiveError("Game is not active")

            player = session.get_player_by_role(role)
            if not player.connected:
                raise GameStateError("Only a connected player can abandon the game")
            await self.finish(
                session,
                GameState.finished,
                FinishReason.abandon,
                f"{player.name} abandoned the game",
            )
