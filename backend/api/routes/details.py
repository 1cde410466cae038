"""
Release detail endpoint.

GET /v1/releases/{release_id}/details/{source} : Achievement/trophy list with earn state, cached.
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from shared.models.domain import DetailResult
from shared.models.enums import ProviderSource

from api.dependencies import CoreServices, get_current_user, get_services

router = APIRouter(prefix="/v1/releases", tags=["details"])


@router.get("/{release_id}/details/{source}", response_model=DetailResult)
async def release_details(
    release_id: uuid.UUID,
    source: ProviderSource,
    force: bool = Query(False, description="Bypass the cache and refetch from the provider"),
    user_id: str = Depends(get_current_user),
    services: CoreServices = Depends(get_services),
) -> DetailResult:
    return await services.details.get_or_fetch(user_id, release_id, source, force=force)
