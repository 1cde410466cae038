"""
Dependency injection for the API service.
Provides infrastructure, the core services and the caller identity to route handlers.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from shared.config import get_settings
from shared.errors import NotAuthenticated
from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager

from catalog.matcher import CatalogMatcher
from catalog.store import CatalogStore
from detail_cache.service import DetailCache
from providers.registry import ProviderRegistry
from reconcile.service import ReconciliationService
from scoring.service import ScoreService


@dataclass
class CoreServices:
    """Everything the routes call into, wired once at startup."""
    catalog: CatalogStore
    providers: ProviderRegistry
    matcher: CatalogMatcher
    reconciler: ReconciliationService
    details: DetailCache
    scores: ScoreService


# Module-level singletons, initialized at startup
_redis: RedisManager | None = None
_db: DatabaseManager | None = None
_services: CoreServices | None = None


def init_dependencies(
    redis: Optional[RedisManager], db: Optional[DatabaseManager], services: CoreServices
) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _redis, _db, _services
    _redis = redis
    _db = db
    _services = services


def get_redis() -> RedisManager:
    """FastAPI dependency: returns the shared RedisManager."""
    if _redis is None:
        raise RuntimeError("RedisManager not initialized; call init_dependencies first")
    return _redis


def get_db() -> DatabaseManager:
    """FastAPI dependency: returns the shared DatabaseManager."""
    if _db is None:
        raise RuntimeError("DatabaseManager not initialized; call init_dependencies first")
    return _db


def get_services() -> CoreServices:
    if _services is None:
        raise RuntimeError("Core services not initialized; call init_dependencies first")
    return _services


def get_current_user(request: Request) -> str:
    """Caller id from the header set by the auth gateway."""
    user_id = (request.headers.get(get_settings().user_header) or "").strip()
    if not user_id:
        raise NotAuthenticated()
    return user_id
