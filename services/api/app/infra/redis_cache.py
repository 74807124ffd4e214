"""Cache keys and helpers shared by the cook session and cook record services.

The cache is advisory. Callers go through `guarded` so that a slow or broken
Redis degrades to "no value" instead of failing the request.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Optional, TypeVar

from app.settings import settings

logger = logging.getLogger("chefascend.cache")

T = TypeVar("T")

# INCR and the first EXPIRE must run as one unit, otherwise a crash or a
# concurrent caller between the two leaves a counter that never expires.
INCR_TODAY_COUNT_LUA = """
local key = KEYS[1]
local ttl = tonumber(ARGV[1])
local value = redis.call('INCR', key)
if redis.call('TTL', key) < 0 then
  redis.call('EXPIRE', key, ttl)
end
return value
"""


def session_state_key(session_id: int) -> str:
    return f"session:state:{session_id}"


def today_count_key(dish_id: int, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"today:count:{now.astimezone(timezone.utc):%Y%m%d}:{dish_id}"


def parse_count(value) -> Optional[int]:
    """Non-negative integer from a cache reply, or None."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None


@dataclass(frozen=True)
class CachedSessionState:
    current_step_no: int
    remaining_seconds: int
    is_paused: bool
    updated_at: Optional[int] = None

    def to_hash(self) -> dict[str, str]:
        return {
            "current_step_no": str(self.current_step_no),
            "remaining_seconds": str(self.remaining_seconds),
            "is_paused": "1" if self.is_paused else "0",
            "updated_at": str(self.updated_at if self.updated_at is not None else int(time.time())),
        }

    @classmethod
    def from_hash(cls, raw: Optional[dict]) -> Optional["CachedSessionState"]:
        """Decode a stored hash. Anything incomplete or malformed is None."""
        if not raw:
            return None
        current_step_no = parse_count(raw.get("current_step_no"))
        remaining_seconds = parse_count(raw.get("remaining_seconds"))
        is_paused = raw.get("is_paused")
        if current_step_no is None or remaining_seconds is None or is_paused not in ("0", "1"):
            return None
        return cls(
            current_step_no=current_step_no,
            remaining_seconds=remaining_seconds,
            is_paused=is_paused == "1",
            updated_at=parse_count(raw.get("updated_at")),
        )


async def guarded(op: Awaitable[T], *, what: str) -> Optional[T]:
    """Await a cache operation with a hard timeout; failures become None."""
    try:
        return await asyncio.wait_for(op, timeout=settings.cache_op_timeout_sec)
    except Exception as e:
        logger.warning(f"Cache {what} failed, falling back to database: {e!r}")
        return None
