# Chef Ascend API Main Entry Point
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .db import dispose_engine
from .infra.redis_cache import guarded
from .infra.redis_client import get_redis, close_redis
from .settings import settings
from .routers.ready import router as ready_router
from .routers.cook_sessions import router as cook_sessions_router
from .routers.cook_records import router as cook_records_router

# Configure structured logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("chefascend")

# Rate limiter (per-IP)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis = await get_redis()
    if redis is None:
        logger.info("Redis cache disabled by configuration")
    elif not await guarded(redis.ping(), what="startup ping"):
        logger.warning("Redis unavailable at startup; serving from the database only until it recovers")
    yield
    logger.info("Shutting down")
    await close_redis()
    await dispose_engine()


app = FastAPI(title="Chef Ascend API", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    issues = [
        {
            "path": ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "path", "query")),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"message": "Invalid request parameters", "issues": issues})


app.include_router(ready_router, tags=["ready"])
app.include_router(cook_sessions_router, prefix="/api/v1")
app.include_router(cook_records_router, prefix="/api/v1")
