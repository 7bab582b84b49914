"""Pure helpers: response card formatting for rated items, diffs, and sessions."""

from typing import List, Optional

from fastapi import HTTPException

from ranking.errors import (
    InvalidScore,
    ListBusy,
    RatingNotFound,
    SessionNotFound,
    StoreUnavailable,
    TransactionConflict,
)
from ranking.models import CommunityAggregate, RatedItem, ScoreChange

from .models import (
    AggregateCard,
    InsertionResultResponse,
    RatedItemCard,
    ScoreChangeCard,
    SessionResponse,
)
from .services import InsertionResult, SessionStep


def to_item_card(item: RatedItem, rank: Optional[int] = None) -> RatedItemCard:
    return RatedItemCard(
        id=item.id,
        external_id=item.external_id,
        title=item.title,
        tier=item.tier,
        category=item.category,
        genres=list(item.genres),
        score=item.score,
        original_score=item.original_score,
        comparisons_count=item.comparisons_count,
        state=item.state,
        placed=item.placed,
        rank=rank,
    )


def to_ranked_cards(items: List[RatedItem]) -> List[RatedItemCard]:
    """Cards for an ordered personal list, ranks numbered 1.. within each tier."""
    cards = []
    previous_tier = None
    rank = 0
    for item in items:
        rank = rank + 1 if item.tier == previous_tier else 1
        previous_tier = item.tier
        cards.append(to_item_card(item, rank))
    return cards


def to_change_cards(changes: List[ScoreChange]) -> List[ScoreChangeCard]:
    return [
        ScoreChangeCard(
            item_id=c.item.id,
            title=c.item.title,
            old_score=c.old_score,
            new_score=c.new_score,
        )
        for c in changes
    ]


def to_aggregate_card(aggregate: Optional[CommunityAggregate]) -> Optional[AggregateCard]:
    if aggregate is None:
        return None
    return AggregateCard(
        content_id=aggregate.content_id,
        title=aggregate.title,
        category=aggregate.category,
        total_score=aggregate.total_score,
        rating_count=aggregate.rating_count,
        average_rating=aggregate.average_rating,
    )


def to_result_response(result: InsertionResult) -> InsertionResultResponse:
    return InsertionResultResponse(
        item=to_item_card(result.item, result.rank),
        rank=result.rank,
        changes=to_change_cards(result.changes),
        aggregate=to_aggregate_card(result.aggregate),
    )


def to_session_response(step: SessionStep) -> SessionResponse:
    session = step.session
    comparator = session.comparator
    current = None if step.finished else comparator.current
    return SessionResponse(
        status="finished" if step.finished else "comparing",
        session_id=session.session_id,
        user_id=session.user_id,
        item=to_item_card(session.item, step.result.rank if step.finished else None),
        compare_with=to_item_card(current) if current is not None else None,
        comparisons=comparator.comparisons,
        candidates_count=len(comparator.candidates),
        rerank_of=session.prior_item_id,
        result=to_result_response(step.result) if step.finished else None,
    )


def to_http_exception(error: Exception) -> HTTPException:
    """Map a ranking error to the HTTP status the API reports for it."""
    if isinstance(error, (RatingNotFound, SessionNotFound)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (InvalidScore, ValueError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, StoreUnavailable):
        return HTTPException(status_code=503, detail=f"Store unavailable: {error}")
    if isinstance(error, (TransactionConflict, ListBusy)):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
