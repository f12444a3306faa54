"""
Hypeakz Data API - Main Application Entry Point.

This module builds the FastAPI application for the reference remote store: the
backend the client data layer reaches through its Bounded Remote Caller.

Key Responsibilities:
- Configure logging on startup.
- Create the database tables once, before traffic arrives. If the database is
  unavailable the service still starts; table creation is retried lazily by
  the first request that needs it.
- Restrict CORS to the configured front-end origins.
- Mount the health routers, the remote action endpoint and the payment
  provider webhook.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import engine, settings, table_initializer
from api.endpoints import router
from api.health_router import health_router, monitoring_router
from api.webhook_router import webhook_router
from core.exceptions import DataLayerError
from core.logging_config import setup_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger = get_logger("api.startup")
    try:
        await table_initializer.ensure_tables()
        logger.info("Database initialized successfully")
    except DataLayerError as e:
        logger.error(f"Database initialization failed: {e}")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down Hypeakz Data API")
    await engine.dispose()


app = FastAPI(
    title="Hypeakz Data API",
    description="Remote store for user profiles, history, brief profiles and quota",
    version="1.0.0",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Health routers first (no authentication required for monitoring)
app.include_router(health_router)
app.include_router(monitoring_router)

app.include_router(router)
app.include_router(webhook_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8002,
        reload=True,
        log_level="info",
    )
