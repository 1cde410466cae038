"""
Lifetime score endpoints.

GET /v1/score          : Recompute the score from stored progress and refresh the snapshot.
GET /v1/score/snapshot : Last persisted breakdown, without recomputing.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from shared.models.domain import ScoreBreakdown

from api.dependencies import CoreServices, get_current_user, get_services

router = APIRouter(prefix="/v1/score", tags=["score"])


class ScoreResponse(ScoreBreakdown):
    warning: Optional[str] = None


@router.get("", response_model=ScoreResponse)
async def get_score(
    user_id: str = Depends(get_current_user),
    services: CoreServices = Depends(get_services),
) -> ScoreResponse:
    breakdown = await services.scores.compute(user_id)
    warning = await services.scores.persist_snapshot(user_id, breakdown)
    return ScoreResponse(**breakdown.model_dump(), warning=warning)


@router.get("/snapshot", response_model=ScoreBreakdown)
async def get_score_snapshot(
    user_id: str = Depends(get_current_user),
    services: CoreServices = Depends(get_services),
) -> ScoreBreakdown:
    snapshot = await services.scores.get_snapshot(user_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No score snapshot yet")
    return snapshot
