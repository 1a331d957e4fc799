"""
Consumption Ledger — FastAPI entrypoint
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from app.core.config import get_settings
from app.core.exceptions import LedgerError
from app.core.redis_client import close_redis
from app.db.database import engine, Base
from app.middleware.auth import JWTAuthMiddleware
from app.api import adjustments, catalog, health, records, users

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# LedgerError.code → HTTP status
ERROR_STATUS = {
    "VALIDATION_ERROR": 422,
    "NOT_FOUND": 404,
    "INSUFFICIENT_STOCK": 409,
    "QUOTA_EXCEEDED": 409,
    "NEGATIVE_STOCK": 409,
    "CONCURRENCY_CONFLICT": 409,
    "DUPLICATE_NAME": 409,
    "TYPE_IN_USE": 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables (migrations are applied out of band in production)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Consumption Ledger",
    description="Office consumable stock and per-period quota accounting with optimistic locking.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True,
                   allow_methods=["*"], allow_headers=["*"])
app.add_middleware(JWTAuthMiddleware)

if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = ERROR_STATUS.get(exc.code, 400)
    headers = {"Retry-After": "1"} if exc.retryable else None
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


app.include_router(records.router)
app.include_router(adjustments.router)
app.include_router(catalog.types_router)
app.include_router(catalog.items_router)
app.include_router(users.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
