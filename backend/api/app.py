"""
FastAPI application factory for the SaveState core API.

Creates the app with:
- catalog, sync, detail and score routes
- middleware stack and CoreError rendering
- health check
- lifespan management: infrastructure, provider clients and core services
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI

from shared.config import Settings, get_settings
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import CoreServices, init_dependencies
from api.middleware import setup_middleware
from api.routes.catalog import router as catalog_router
from api.routes.details import router as details_router
from api.routes.score import router as score_router
from api.routes.sync import router as sync_router
from catalog.matcher import CatalogMatcher
from catalog.store import SqlCatalogStore
from detail_cache.fetcher import ProviderDetailFetcher
from detail_cache.service import DetailCache
from detail_cache.store import SqlDetailCacheStore
from providers.registry import build_provider_registry
from providers.session import StoredCredentialSession
from reconcile.service import ReconciliationService
from reconcile.store import SqlProgressStore
from scoring.service import ScoreService
from scoring.store import SqlBonusStore

logger = get_logger(__name__)

_CONNECT_RETRY_ATTEMPTS = 10
_CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn: Callable[[], Awaitable[None]], name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


def build_services(settings: Settings, db: DatabaseManager, redis: RedisManager) -> CoreServices:
    """Wire the core services onto live infrastructure."""
    providers = build_provider_registry(settings)
    catalog = SqlCatalogStore(db)
    session = StoredCredentialSession(db)
    progress = SqlProgressStore(db)
    matcher = CatalogMatcher(catalog, providers, redis, session=session)
    return CoreServices(
        catalog=catalog,
        providers=providers,
        matcher=matcher,
        reconciler=ReconciliationService(progress, catalog, session, settings),
        details=DetailCache(
            SqlDetailCacheStore(db),
            ProviderDetailFetcher(catalog, matcher, session, providers),
            settings,
        ),
        scores=ScoreService(progress, SqlBonusStore(db), redis, settings=settings),
    )


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without DB/Redis."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    setup_logging("api")
    start_metrics_server()

    redis = RedisManager(settings)
    db = DatabaseManager(settings)
    await _connect_with_retry(redis.connect, "Redis")
    await _connect_with_retry(db.connect, "Database")

    services = build_services(settings, db, redis)
    await services.providers.start()
    init_dependencies(redis, db, services)

    logger.info("api_service_started", host=settings.api_host, port=settings.api_port)

    yield

    await services.providers.close()
    await db.disconnect()
    await redis.disconnect()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing without DB/Redis."""
    app = FastAPI(
        title="SaveState Core API",
        description="Cross-platform game library reconciliation and lifetime score",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    setup_middleware(app)

    app.include_router(catalog_router)
    app.include_router(sync_router)
    app.include_router(details_router)
    app.include_router(score_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    return app


# For running with uvicorn directly
app = create_app()
