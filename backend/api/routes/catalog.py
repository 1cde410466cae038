"""
Catalog matching endpoints.

POST /v1/catalog/{source}/releases/{release_id}/match : Match one release to the provider's title id.
POST /v1/catalog/{source}/match                       : Match the next page of releases behind a cursor.
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shared.models.domain import BatchMatchResult, MatchResult
from shared.models.enums import ProviderSource
from shared.utils.logging import get_logger

from api.dependencies import CoreServices, get_current_user, get_services

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/catalog", tags=["catalog"])


@router.post("/{source}/releases/{release_id}/match", response_model=MatchResult)
async def match_release(
    source: ProviderSource,
    release_id: uuid.UUID,
    dry_run: bool = Query(False),
    user_id: str = Depends(get_current_user),
    services: CoreServices = Depends(get_services),
) -> MatchResult:
    release = await services.catalog.get_release(release_id)
    if release is None:
        raise HTTPException(status_code=404, detail="Release not found")
    return await services.matcher.match_release(release, source, dry_run=dry_run, user_id=user_id)


@router.post("/{source}/match", response_model=BatchMatchResult)
async def match_batch(
    source: ProviderSource,
    cursor: Optional[uuid.UUID] = Query(None, description="next_cursor from the previous page"),
    limit: Optional[int] = Query(None, ge=1),
    dry_run: bool = Query(False),
    user_id: str = Depends(get_current_user),
    services: CoreServices = Depends(get_services),
) -> BatchMatchResult:
    """
    Match up to `limit` releases after `cursor`.

    Per-release failures are listed in `errors`; the page always completes
    unless the provider account the search needs is not linked.
    """
    logger.info("match_batch_requested", user_id=user_id, source=source.value, cursor=str(cursor) if cursor else None)
    return await services.matcher.match_batch(source, cursor, limit, dry_run=dry_run, user_id=user_id)
