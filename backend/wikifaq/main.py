"""
Main FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from wikifaq import __version__
from wikifaq.api import api_router
from wikifaq.core.config import Settings, get_settings
from wikifaq.core.logging import get_logger, setup_logging
from wikifaq.db.redis import check_redis_health
from wikifaq.db.session import check_db_health
from wikifaq.services.container import ServiceContainer

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the service container on startup, close it on shutdown."""
        logger.info(
            "starting_application",
            app_name=settings.APP_NAME,
            environment=settings.APP_ENV,
            version=__version__,
        )
        app.state.container = await ServiceContainer.create(settings)

        yield

        logger.info("shutting_down_application")
        await app.state.container.aclose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Wikipedia FAQ generation pipeline - control API",
        version=__version__,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.get("/health", tags=["health"])
    async def health_check(request: Request) -> JSONResponse:
        """Health check endpoint, including database connectivity."""
        container: Optional[ServiceContainer] = getattr(request.app.state, "container", None)
        db_healthy = container is not None and await check_db_health(container.engine)

        content = {
            "status": "healthy" if db_healthy else "unhealthy",
            "app_name": settings.APP_NAME,
            "environment": settings.APP_ENV,
            "version": __version__,
            "database": "connected" if db_healthy else "disconnected",
        }
        # Redis only backs the shared rate limiter; report it when configured
        redis = getattr(container, "redis", None)
        if redis is not None:
            content["redis"] = "connected" if await check_redis_health(redis) else "disconnected"

        return JSONResponse(status_code=200 if db_healthy else 503, content=content)

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            method=request.method,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "internal_server_error",
                    "message": "An unexpected error occurred. Please try again later.",
                }
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "wikifaq.main:app",
        host="0.0.0.0",
        port=8000,
        reload=_settings.DEBUG,
        log_level=_settings.LOG_LEVEL.lower(),
    )
