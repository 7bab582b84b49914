"""Community aggregate and leaderboard endpoints."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ranking.errors import RankingError
from ranking.models import Category
from ranking.stages import build_leaderboard, global_prior

from ..models import AggregateCard, LeaderboardResponse
from ..state import get_state
from ..utils import to_aggregate_card, to_http_exception

router = APIRouter()


@router.get("", response_model=LeaderboardResponse)
async def leaderboard(
    category: Optional[Category] = None,
    limit: int = Query(50, ge=1, le=500),
):
    """Confidence-adjusted community ranking, best first."""
    state = get_state()
    try:
        aggregates = await state.aggregate_store.list_all()
    except RankingError as e:
        raise to_http_exception(e)
    valid = [a for a in aggregates if a.is_valid() and a.rating_count > 0]
    mu, c = global_prior(valid, state.ranking_config)
    return LeaderboardResponse(
        category=category,
        global_mean=mu,
        prior_strength=c,
        entries=build_leaderboard(valid, category=category, limit=limit, config=state.ranking_config),
    )


@router.get("/{content_id}", response_model=AggregateCard)
async def get_aggregate(content_id: str):
    try:
        aggregate = await get_state().aggregate_store.get(content_id)
    except RankingError as e:
        raise to_http_exception(e)
    if aggregate is None or not aggregate.is_valid():
        raise HTTPException(status_code=404, detail=f"No community rating for {content_id!r}")
    return to_aggregate_card(aggregate)
