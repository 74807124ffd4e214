from typing import Optional

from fastapi import APIRouter, Depends
from redis.asyncio import Redis

from app.deps import get_cache
from app.infra.redis_cache import guarded

router = APIRouter()


@router.get("/healthz")
async def healthz(redis: Optional[Redis] = Depends(get_cache)):
    redis_ok = False
    if redis is not None:
        redis_ok = bool(await guarded(redis.ping(), what="ping"))
    return {"status": "ok", "redis": "connected" if redis_ok else "disabled_or_unavailable"}
