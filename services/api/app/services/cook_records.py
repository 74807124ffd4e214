"""Session completion and the per-dish "cooked today" counter."""

import logging
from typing import Optional

from redis.asyncio import Redis

from ..infra.redis_cache import (
    INCR_TODAY_COUNT_LUA,
    guarded,
    parse_count,
    session_state_key,
    today_count_key,
)
from ..repositories.cook_records import CookRecordRepository
from ..schemas import CookCompleteResponse, UserCookRecordItem, UserCookRecordListResponse
from ..settings import settings
from .errors import EntityNotFoundError

logger = logging.getLogger("chefascend.cook_records")


class CookRecordService:
    def __init__(self, repository: CookRecordRepository, redis: Optional[Redis] = None):
        self.repository = repository
        self.redis = redis

    async def complete_session(
        self,
        session_id: int,
        result: str,
        user_id: Optional[int] = None,
        rating: Optional[int] = None,
        note: Optional[str] = None,
    ) -> CookCompleteResponse:
        outcome = await self.repository.complete_session(
            session_id, result, user_id=user_id, rating=rating, note=note
        )
        if outcome is None:
            raise EntityNotFoundError("Session not found")

        await self._clear_session_state(outcome.session_id)

        if outcome.is_new_record:
            today_count = await self._count_after_new_record(outcome.dish_id)
        else:
            logger.info(f"Session {session_id} already completed as record {outcome.record_id}")
            today_count = await self._current_count(outcome.dish_id)

        return CookCompleteResponse(
            session_id=outcome.session_id,
            record_id=outcome.record_id,
            result=outcome.result,
            today_cook_count=today_count,
        )

    async def list_user_records(self, user_id: int, page: int, page_size: int) -> UserCookRecordListResponse:
        if not await self.repository.user_exists(user_id):
            raise EntityNotFoundError("User not found")

        total = await self.repository.count_user_records(user_id)
        rows = await self.repository.list_user_records(user_id, page, page_size)
        return UserCookRecordListResponse(
            page=page,
            page_size=page_size,
            total=total,
            items=[
                UserCookRecordItem(
                    record_id=row.record_id,
                    dish_id=row.dish_id,
                    dish_name=row.dish_name,
                    result=row.result,
                    rating=row.rating,
                    cooked_at=row.cooked_at,
                )
                for row in rows
            ],
        )

    async def _count_after_new_record(self, dish_id: int) -> int:
        incremented = await self._increment_today_count(dish_id)
        if incremented is not None:
            return incremented
        return await self.repository.get_today_cook_count(dish_id)

    async def _current_count(self, dish_id: int) -> int:
        cached = await self._cached_today_count(dish_id)
        if cached is not None:
            return cached
        return await self.repository.get_today_cook_count(dish_id)

    async def _increment_today_count(self, dish_id: int) -> Optional[int]:
        if self.redis is None:
            return None
        incr = self.redis.register_script(INCR_TODAY_COUNT_LUA)
        value = await guarded(
            incr(keys=[today_count_key(dish_id)], args=[settings.today_count_ttl_sec]),
            what="today count increment",
        )
        return parse_count(value)

    async def _cached_today_count(self, dish_id: int) -> Optional[int]:
        if self.redis is None:
            return None
        value = await guarded(self.redis.get(today_count_key(dish_id)), what="today count read")
        return parse_count(value)

    async def _clear_session_state(self, session_id: int) -> None:
        if self.redis is None:
            return
        await guarded(self.redis.delete(session_state_key(session_id)), what="session state delete")
