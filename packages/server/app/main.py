"""
Askbox API Server

Entry point for the FastAPI application.
"""

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.api import router as api_router
from app.core.config import get_settings
from app.core.database import engine, init_db
from app.core.errors import install_error_handling
from app.core.logging import configure_logging
from app.core.middleware import (
    REQUEST_ID_HEADER,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from app.core.redis import close_redis, get_redis

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Askbox",
        description="Anonymous question box for organizations.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type", settings.auth_header_name, REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, "Retry-After"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    install_error_handling(app)

    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness probe: the database and Redis both answer."""
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        client = await get_redis()
        await client.ping()
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("askbox.starting", debug=settings.debug)
        if settings.debug:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("askbox.stopping")
        await close_redis()

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
