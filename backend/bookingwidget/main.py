import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError

from .config import settings
from .database import init_db
from .errors import install_error_handlers
from .middleware.audit import audit_middleware
from .redis_client import redis_client
from .routers import bookings, embed, slots
from .services.completion_checker import completion_checker_loop

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    checker = None
    if settings.completion_checker_enabled:
        checker = asyncio.create_task(completion_checker_loop())

    yield

    if checker is not None:
        checker.cancel()
        await asyncio.gather(checker, return_exceptions=True)


app = FastAPI(title="Booking Widget API", lifespan=lifespan)

app.middleware("http")(audit_middleware)
install_error_handlers(app)

app.include_router(embed.router)
app.include_router(slots.router)
app.include_router(bookings.widget_router)
app.include_router(bookings.router)


@app.get("/health")
def health():
    if redis_client is None:
        return {"status": "ok", "redis": None}
    try:
        return {"status": "ok", "redis": redis_client.ping()}
    except RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return {"status": "degraded", "redis": False}
