"""
Provider sync endpoints.

POST /v1/sync/{source}        : Pull every feed of a linked provider and reconcile it.
POST /v1/sync/{source}/import : Reconcile raw items pushed by the caller (PSN, Xbox, exports).
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from shared.config import Settings, get_settings
from shared.errors import UnsupportedPlatform
from shared.models.domain import SyncResult
from shared.models.enums import ProviderFeed, ProviderSource
from shared.utils.redis_manager import RedisManager

from api.dependencies import CoreServices, get_current_user, get_redis, get_services
from api.lease import sync_lease

router = APIRouter(prefix="/v1/sync", tags=["sync"])


class ImportRequest(BaseModel):
    feed: ProviderFeed
    items: list[Any] = Field(default_factory=list)


@router.post("/{source}", response_model=SyncResult)
async def sync_source(
    source: ProviderSource,
    user_id: str = Depends(get_current_user),
    services: CoreServices = Depends(get_services),
    redis: RedisManager = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> SyncResult:
    provider = services.providers.get_provider(source)
    if provider is None:
        raise UnsupportedPlatform(f"No read adapter for {source.value}; use the import endpoint")
    async with sync_lease(redis, user_id, source, settings.sync_lease_ttl_s):
        return await services.reconciler.sync_provider(user_id, provider)


@router.post("/{source}/import", response_model=SyncResult)
async def import_items(
    source: ProviderSource,
    body: ImportRequest,
    user_id: str = Depends(get_current_user),
    services: CoreServices = Depends(get_services),
    redis: RedisManager = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> SyncResult:
    if body.feed.source != source:
        raise HTTPException(status_code=422, detail=f"Feed {body.feed.value} does not belong to {source.value}")
    async with sync_lease(redis, user_id, source, settings.sync_lease_ttl_s):
        return await services.reconciler.sync_feed(user_id, body.feed, body.items)
