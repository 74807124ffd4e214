"""FastAPI dependencies for the Chef Ascend API.

Provides:
- Redis client (None when the cache is disabled)
- Cook session and cook record services bound to the request's DB session
"""

from typing import Optional

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_db
from .infra.redis_client import get_redis
from .repositories.cook_records import CookRecordRepository
from .repositories.cook_sessions import CookSessionRepository
from .services.cook_records import CookRecordService
from .services.cook_sessions import CookSessionService


async def get_cache() -> Optional[Redis]:
    return await get_redis()


def get_cook_session_service(
    db: AsyncSession = Depends(get_db),
    redis: Optional[Redis] = Depends(get_cache),
) -> CookSessionService:
    return CookSessionService(CookSessionRepository(db), redis)


def get_cook_record_service(
    db: AsyncSession = Depends(get_db),
    redis: Optional[Redis] = Depends(get_cache),
) -> CookRecordService:
    return CookRecordService(CookRecordRepository(db), redis)
