"""
Application entry point: lifespan-managed resources, middleware and routers.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.dependencies import build_services
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.middleware import RequestContextMiddleware
from app.routes import activity_sessions, health, integrations
from app.services.infrastructure.redis_client import fast_redis
from app.services.providers import create_provider_http_client

# Setup logging before creating the app
setup_logging(log_level=settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open shared resources on startup and close them in reverse on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks = []

    try:
        logger.info("Initializing database pool")
        await db_pool.initialize()
        startup_tasks.append("database_pool")

        logger.info("Initializing Redis connection")
        await fast_redis.initialize()
        startup_tasks.append("redis")

        services = build_services(create_provider_http_client())
        app.state.services = services
        startup_tasks.append("services")

        services.session_store.start_sweeper()
        startup_tasks.append("session_sweeper")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)
        await _shutdown(app, startup_tasks)
        raise

    yield

    logger.info("Application shutting down")
    await _shutdown(app, startup_tasks)


async def _shutdown(app: FastAPI, started: list[str]) -> None:
    shutdown_errors = []

    if "services" in started:
        try:
            await app.state.services.close()
        except Exception as e:
            logger.error("Error closing services", error=str(e))
            shutdown_errors.append(f"Services: {e}")

    if "redis" in started:
        try:
            await fast_redis.close()
        except Exception as e:
            logger.error("Error closing Redis", error=str(e))
            shutdown_errors.append(f"Redis: {e}")

    if "database_pool" in started:
        try:
            await db_pool.close()
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))
            shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Activity Journal",
    description="Turns third-party work activity into journal entry drafts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)
app.include_router(integrations.router)
app.include_router(activity_sessions.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
