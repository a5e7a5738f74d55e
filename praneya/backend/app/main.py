# backend/app/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import time
import uuid

import redis.asyncio as aioredis

from app.api.errors import register_exception_handlers
from app.api.v1.router import api_router
from app.core.config import Settings, settings as default_settings
from app.core.logging import logger, setup_logging
from app.db.database import Database
from app.middleware.rate_limit import rate_limit_middleware
from app.services.container import Services, build_services


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Application factory.

    Passing ``services`` skips connecting to the configured stores, which is
    how tests run the app against their own database and redis.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(settings.LOG_LEVEL)
        logger.info("Starting Praneya API", extra={"environment": settings.ENVIRONMENT})

        owned = None
        if getattr(app.state, "services", None) is None:
            database = Database.from_settings(settings)
            redis_client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
            await database.init_db()
            app.state.services = build_services(database, redis_client, settings)
            owned = (database, redis_client)

        yield

        # Shutdown
        logger.info("Shutting down Praneya API")
        if owned is not None:
            database, redis_client = owned
            await redis_client.aclose()
            await database.close()

    app = FastAPI(
        title="Praneya API",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=("/api/docs" if settings.ENVIRONMENT == "development" else None),
        redoc_url=("/api/redoc" if settings.ENVIRONMENT == "development" else None),
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(
        rate_limit_middleware(
            limit=settings.RATE_LIMIT_PER_MINUTE,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            path_prefix=settings.API_V1_STR,
        )
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        request.state.request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    app.include_router(api_router, prefix=settings.API_V1_STR)
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        services: Services = request.app.state.services
        database = await services.database.health_check()
        cache = await services.cache.health_check()
        healthy = database["status"] == "healthy" and cache["status"] == "healthy"
        return {
            "status": "healthy" if healthy else "degraded",
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "database": database,
            "cache": cache,
        }

    return app


app = create_app()
