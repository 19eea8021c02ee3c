from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from .db import init_db, dispose_db
from .routers import checkins, businesses, points
from .core.config import get_settings
from .core.redis import ping_redis
from .core.nats import nats_connect, nats_close

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    # infra is best-effort at startup; check-ins do not depend on NATS
    if settings.nats_enabled:
        try:
            await nats_connect()
        except Exception as e:
            logger.warning(f"NATS unavailable at startup: {e}")
    if settings.rl_enabled and not await ping_redis():
        logger.warning("Redis unavailable at startup; throttled routes will fail until it is back")
    logger.info("checkin-rewards-svc started")
    yield
    try:
        await nats_close()
    except Exception as e:
        logger.warning(f"NATS drain failed: {e}")
    await dispose_db()

app = FastAPI(title="checkin-rewards-svc", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checkins.router)
app.include_router(businesses.router)
app.include_router(points.router)

@app.get("/health")
async def health():
    return {"status": "ok", "service": "checkin-rewards-svc"}

Instrumentator().instrument(app).expose(app)
