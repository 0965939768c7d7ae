"""FastAPI application for datavault."""

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..backends.base import ComponentBackend
from ..backends.config_snapshot import ConfigSnapshotBackend
from ..config import BackupConfig
from ..metadata.redis import RedisMetadataStore
from ..models import Component
from ..restore.tokens import RedisRestoreTokenStore
from ..service import BackupService, config_settings
from .config import Settings, settings
from .exceptions import register_exception_handlers
from .routers import backup

# App-managed logging: attach our own handler and don't propagate,
# independent of uvicorn's root logger configuration
datavault_logger = logging.getLogger("datavault")
datavault_logger.setLevel(logging.INFO)
datavault_logger.propagate = False
datavault_logger.handlers.clear()

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)
console_handler.setFormatter(logging.Formatter(
    '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
))
datavault_logger.addHandler(console_handler)

if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
    datavault_logger.handlers.clear()
    datavault_logger.propagate = True  # Fall back to server-managed pattern

logger = logging.getLogger(__name__)


def build_backends(app_settings: Settings, config: BackupConfig) -> Dict[Component, ComponentBackend]:
    """Instantiate a backend for every data source with a configured URL."""
    backends: Dict[Component, ComponentBackend] = {}

    if app_settings.neo4j_url:
        from ..backends.graph import GraphBackend
        auth = None
        if app_settings.neo4j_username:
            auth = (app_settings.neo4j_username, app_settings.neo4j_password or "")
        backends[Component.GRAPH] = GraphBackend(
            app_settings.neo4j_url, auth=auth, database=app_settings.neo4j_database
        )

    if app_settings.qdrant_url:
        from ..backends.vector import VectorBackend
        backends[Component.VECTOR] = VectorBackend(
            app_settings.qdrant_url,
            api_key=app_settings.qdrant_api_key,
            collections=app_settings.qdrant_collections,
        )

    if app_settings.postgres_url:
        from ..backends.relational import RelationalBackend
        backends[Component.RELATIONAL] = RelationalBackend(
            app_settings.postgres_url, schema=app_settings.postgres_schema
        )

    backends[Component.CONFIG] = ConfigSnapshotBackend(
        source=lambda: {
            **config_settings(config),
            "api": app_settings.model_dump(exclude={"neo4j_password", "qdrant_api_key", "redis_password"}),
        },
        restore_path=app_settings.config_restore_path,
    )
    return backends


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage BackupService lifecycle."""
    if getattr(app.state, "backup_service", None) is not None:
        yield
        return

    logger.info("Initializing backup service...")
    config = BackupConfig.from_env()
    redis_client = None
    metadata_store = None
    token_store = None

    if settings.redis_url:
        redis_client = redis.from_url(settings.redis_url, password=settings.redis_password)
        await redis_client.ping()
        metadata_store = RedisMetadataStore(redis_client)
        token_store = RedisRestoreTokenStore(redis_client)
        logger.info("Using Redis for backup metadata and restore tokens")
    else:
        logger.info("Redis not configured - backup metadata and restore tokens are in-process only")

    app.state.backup_service = BackupService(
        config,
        backends=build_backends(settings, config),
        metadata_store=metadata_store,
        token_store=token_store,
    )

    yield

    logger.info("Shutting down backup service...")
    await app.state.backup_service.close()
    if redis_client is not None:
        await redis_client.close()


def create_app(service: Optional[BackupService] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        service: Pre-built service to serve instead of one built from the environment
    """
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.backup_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(backup.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app


# Create default app instance
app = create_app()
