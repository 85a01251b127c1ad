"""
RemitRail — FastAPI application entry point.

Configures logging, wires the orchestrator onto ``app.state`` at startup,
and registers the API routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from remitrail.api import compliance, payments, quotes, rails
from remitrail.config import settings
from remitrail.services.factory import build_orchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.state.orchestrator = build_orchestrator(settings)

    yield

    # Shutdown: let in-process pipelines finish, then close connections
    await app.state.orchestrator.scheduler.drain()
    if settings.STORE_BACKEND == "sql":
        from remitrail.database import engine
        from remitrail.redis_client import redis

        await engine.dispose()
        await redis.aclose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Cross-border payment orchestration: quotes, rail selection, compliance and settlement.",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Routers ---
app.include_router(quotes.router, prefix="/api/v1/quotes", tags=["Quotes"])
app.include_router(rails.router, prefix="/api/v1/rails", tags=["Rails"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(compliance.router, prefix="/api/v1/compliance", tags=["Compliance"])


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for load balancers and monitoring."""
    health = await request.app.state.orchestrator.health_check()
    return {
        **health,
        "service": settings.APP_NAME,
        "version": "0.1.0",
    }
