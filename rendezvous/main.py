from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

from .config import settings
from .core.exceptions import RendezvousError, CapacityError
from .core.logging import get_logger, log_api_call
from .deps import build_dispatcher, build_memory_stores, build_redis_stores
from .stores.redis_store import init_redis, close_redis
from api.routes import signaling

logger = get_logger(__name__)


async def open_stores() -> tuple:
    """Build the configured backend, falling back to memory only when allowed"""
    if settings.STORE_BACKEND == "redis":
        try:
            redis = await init_redis()
            return build_redis_stores(redis, settings)
        except Exception as e:
            if not settings.REDIS_FALLBACK_TO_MEMORY:
                raise
            logger.warning("redis_unavailable", error=str(e), fallback="memory")
            await close_redis()
    elif settings.STORE_BACKEND != "memory":
        raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")

    return build_memory_stores(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown"""
    # Startup
    logger.info("Starting up application...", backend=settings.STORE_BACKEND)
    pool, registry = await open_stores()
    app.state.dispatcher = build_dispatcher(pool, registry, settings)
    logger.info("Application started successfully", pool=type(pool).__name__)

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await close_redis()
    logger.info("Application shut down successfully")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Peer rendezvous and WebRTC signal relay",
    version="1.0.0",
    lifespan=lifespan,
)


# Middleware
# Preflight requests reach the signaling route, which answers with an empty body
@app.middleware("http")
async def access_log(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    # Every response is readable cross-origin, even without an Origin header
    response.headers.setdefault("Access-Control-Allow-Origin", settings.CORS_ALLOW_ORIGIN)
    log_api_call(request.method, request.url.path, response.status_code, time.perf_counter() - started)
    return response


@app.exception_handler(RendezvousError)
async def rendezvous_error_handler(request: Request, exc: RendezvousError) -> JSONResponse:
    headers = {}
    if isinstance(exc, CapacityError):
        headers["Retry-After"] = str(exc.retry_after)
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, reason=exc.reason)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# Include routers
app.include_router(signaling.router, prefix=settings.API_PREFIX, tags=["Signaling"])


# Health check
@app.get("/health", tags=["Infrastructure"])
async def health():
    """Health check endpoint"""
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "backend": settings.STORE_BACKEND,
        "version": "1.0.0"
    }


@app.get("/", tags=["Infrastructure"])
async def root():
    """Root endpoint"""
    return {
        "message": "Peer Rendezvous signaling service",
        "docs": "/docs",
        "signaling": f"{settings.API_PREFIX}/signaling",
        "version": "1.0.0"
    }
