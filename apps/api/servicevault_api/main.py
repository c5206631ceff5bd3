"""ServiceVault API - Main FastAPI application."""

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy import text

from servicevault_api.db import session as db_session
from servicevault_api.ledger.locks import get_lock_provider
from servicevault_api.middleware.auth import AuthMiddleware
from servicevault_api.middleware.correlation import CorrelationIDMiddleware
from servicevault_api.middleware.rate_limit import RateLimitMiddleware, build_rate_limit_store
from servicevault_api.middleware.scopes import ScopeMiddleware
from servicevault_api.routes import admin, assets
from servicevault_api.settings import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting ServiceVault API...")
    try:
        settings.validate_production_settings()
        lock_provider = get_lock_provider()
        logger.info(f"Asset chain appends serialized by {type(lock_provider).__name__}")
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    logger.info("Shutting down ServiceVault API...")


app = FastAPI(
    title="ServiceVault API",
    description="Tamper-evident lifecycle history for physical assets",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Custom middleware (order matters - last added is first executed):
# correlation -> auth -> scopes -> rate limit -> route
app.add_middleware(RateLimitMiddleware, store=build_rate_limit_store(settings))
app.add_middleware(ScopeMiddleware)
app.add_middleware(AuthMiddleware)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(admin.router)
app.include_router(assets.router)


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "servicevault-api",
        "version": "0.1.0",
    }


def _check_database() -> bool:
    db = db_session.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        return False
    finally:
        db.close()


def _check_migrations() -> bool:
    from alembic.config import Config
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    db = db_session.SessionLocal()
    try:
        current_rev = MigrationContext.configure(db.connection()).get_current_revision()
        alembic_ini_path = os.path.join(os.path.dirname(__file__), "..", "alembic.ini")
        alembic_cfg = Config(alembic_ini_path)
        alembic_cfg.set_main_option("script_location", os.path.join(os.path.dirname(__file__), "..", "alembic"))
        head_rev = ScriptDirectory.from_config(alembic_cfg).get_current_head()
        if current_rev != head_rev:
            logger.warning(f"Migrations not at head: current={current_rev}, head={head_rev}")
            return False
        return True
    except Exception as e:
        logger.error(f"Migration check failed: {e}")
        return False
    finally:
        db.close()


def _check_redis() -> bool:
    import redis

    try:
        redis.from_url(settings.redis_url, decode_responses=True).ping()
        return True
    except Exception as e:
        logger.error(f"Redis check failed: {e}")
        return False


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    checks = {
        "database": _check_database(),
        "migrations": False,
        "redis": None,  # None if not required
    }

    if checks["database"]:
        checks["migrations"] = _check_migrations()

    if settings.uses_redis:
        checks["redis"] = _check_redis()

    all_ready = all(value for value in checks.values() if value is not None)

    return JSONResponse(
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "ServiceVault API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
