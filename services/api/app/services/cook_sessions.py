"""Cook session state machine.

The database owns the session status and the current step. Redis only holds
the timer snapshot for the current step (remaining seconds and paused flag);
it is trusted while its step number matches the database and ignored
otherwise. Clients count down locally from the last snapshot they fetched.
"""

import logging
from typing import Optional

from redis.asyncio import Redis

from ..infra.redis_cache import CachedSessionState, guarded, session_state_key
from ..models import IN_PROGRESS
from ..repositories.cook_sessions import CookSessionRepository, SessionRuntime
from ..schemas import SessionStartResponse, SessionStateResponse, StepActionResponse, TimerState
from ..settings import settings
from .errors import EntityNotFoundError, SessionConflictError

logger = logging.getLogger("chefascend.cook_sessions")


class CookSessionService:
    def __init__(self, repository: CookSessionRepository, redis: Optional[Redis] = None):
        self.repository = repository
        self.redis = redis

    async def start_session(self, dish_id: int, user_id: Optional[int] = None) -> SessionStartResponse:
        created = await self.repository.create_session(dish_id, user_id)

        await self._save_state(created.session_id, CachedSessionState(
            current_step_no=created.current_step_no,
            remaining_seconds=created.first_step_timer_seconds,
            is_paused=True,
        ))

        return SessionStartResponse(
            session_id=created.session_id,
            dish_id=created.dish_id,
            status=created.status,
            current_step_no=created.current_step_no,
            started_at=created.started_at,
        )

    async def get_state(self, session_id: int) -> SessionStateResponse:
        runtime = await self._require_runtime(session_id)
        cached = await self._read_state(session_id)
        return self._state_response(runtime, self._resolve_timer(runtime, cached))

    async def start_step(self, session_id: int, step_no: int) -> StepActionResponse:
        runtime = await self._require_runtime(session_id)
        self._ensure_mutable(runtime)
        if step_no != runtime.current_step_no:
            raise SessionConflictError("Step start must match current step")

        step_timer = await self.repository.get_step_timer(session_id, step_no)
        if step_timer is None:
            raise SessionConflictError("Step does not exist in session")

        if not await self.repository.mark_step_started(session_id, step_no):
            raise SessionConflictError("Step is already finished")
        await self._save_state(session_id, CachedSessionState(
            current_step_no=step_no,
            remaining_seconds=step_timer.timer_seconds,
            is_paused=False,
        ))

        return StepActionResponse(
            session_id=runtime.session_id,
            current_step_no=runtime.current_step_no,
            status=runtime.status,
        )

    async def complete_step(self, session_id: int, step_no: int) -> StepActionResponse:
        runtime = await self._require_runtime(session_id)
        self._ensure_mutable(runtime)
        if step_no != runtime.current_step_no:
            raise SessionConflictError("Step complete must match current step")

        completion = await self.repository.complete_step(session_id, step_no)
        if completion is None:
            raise SessionConflictError("Step does not exist in session or is already finished")

        if completion.is_last_step:
            logger.info(f"Session {session_id} finished its last step {step_no}")

        await self._save_state(session_id, CachedSessionState(
            current_step_no=completion.current_step_no,
            remaining_seconds=completion.remaining_seconds,
            is_paused=True,
        ))

        return StepActionResponse(
            session_id=runtime.session_id,
            current_step_no=completion.current_step_no,
            status=runtime.status,
        )

    async def pause_timer(self, session_id: int) -> SessionStateResponse:
        return await self._update_timer(session_id, "pause")

    async def resume_timer(self, session_id: int) -> SessionStateResponse:
        return await self._update_timer(session_id, "resume")

    async def reset_timer(self, session_id: int) -> SessionStateResponse:
        return await self._update_timer(session_id, "reset")

    async def _update_timer(self, session_id: int, action: str) -> SessionStateResponse:
        runtime = await self._require_runtime(session_id)
        self._ensure_mutable(runtime)

        if action == "reset":
            timer = TimerState(remaining_seconds=runtime.current_step_timer_seconds, is_paused=False)
        else:
            cached = await self._read_state(session_id)
            base = self._resolve_timer(runtime, cached)
            timer = TimerState(remaining_seconds=base.remaining_seconds, is_paused=action == "pause")

        await self._save_state(session_id, CachedSessionState(
            current_step_no=runtime.current_step_no,
            remaining_seconds=timer.remaining_seconds,
            is_paused=timer.is_paused,
        ))
        return self._state_response(runtime, timer)

    async def _require_runtime(self, session_id: int) -> SessionRuntime:
        runtime = await self.repository.find_runtime(session_id)
        if runtime is None:
            raise EntityNotFoundError("Session not found")
        return runtime

    @staticmethod
    def _ensure_mutable(runtime: SessionRuntime) -> None:
        if runtime.status != IN_PROGRESS:
            raise SessionConflictError("Session is not in progress")

    @staticmethod
    def _resolve_timer(runtime: SessionRuntime, cached: Optional[CachedSessionState]) -> TimerState:
        if cached is None or cached.current_step_no != runtime.current_step_no:
            return TimerState(remaining_seconds=runtime.current_step_timer_seconds, is_paused=True)
        return TimerState(remaining_seconds=cached.remaining_seconds, is_paused=cached.is_paused)

    @staticmethod
    def _state_response(runtime: SessionRuntime, timer: TimerState) -> SessionStateResponse:
        return SessionStateResponse(
            session_id=runtime.session_id,
            status=runtime.status,
            current_step_no=runtime.current_step_no,
            timer=timer,
        )

    async def _read_state(self, session_id: int) -> Optional[CachedSessionState]:
        if self.redis is None:
            return None
        raw = await guarded(self.redis.hgetall(session_state_key(session_id)), what="session state read")
        return CachedSessionState.from_hash(raw)

    async def _save_state(self, session_id: int, state: CachedSessionState) -> None:
        if self.redis is None:
            return

        async def write():
            key = session_state_key(session_id)
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=state.to_hash())
                pipe.expire(key, settings.session_state_ttl_sec)
                await pipe.execute()

        await guarded(write(), what="session state write")
