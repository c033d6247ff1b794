# app/routes/health.py
"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter, Request

from app.config import settings
from app.db.pool import db_health_check
from app.services.infrastructure.encryption_service import validate_encryption_config
from app.services.infrastructure.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "activity-journal-backend"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check across Redis, the database pool, encryption keys and the
    in-memory session store.
    """
    checks = {}
    overall_ok = True

    # 1) Redis (OAuth state)
    t0 = time.time()
    try:
        redis_ok = await fast_redis.ping()
        checks["redis"] = {"ok": bool(redis_ok), "latency_ms": round((time.time() - t0) * 1000, 1)}
        overall_ok = overall_ok and bool(redis_ok)
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 2) Database pool (credentials, audit log)
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if "pool_stats" in db_health:
            checks["database"]["pool_stats"] = db_health["pool_stats"]
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # 3) Encryption keyring
    encryption_ok = validate_encryption_config()
    checks["encryption"] = {"ok": encryption_ok}
    overall_ok = overall_ok and encryption_ok

    # 4) Session store (informational)
    services = getattr(request.app.state, "services", None)
    checks["sessions"] = {
        "ok": services is not None,
        "active": services.session_store.active_count() if services is not None else 0,
        "ttl_minutes": settings.SESSION_TTL_MINUTES,
    }
    overall_ok = overall_ok and services is not None

    checks["configuration"] = {
        "environment": settings.environment,
        "integrations_enabled": settings.INTEGRATIONS_ENABLED,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
