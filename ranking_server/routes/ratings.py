"""Personal rating endpoints: comparison sessions, list, delete, resume."""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Query

from ranking.errors import DuplicateRating, RankingError
from ranking.models import Category, RatedItem

from ..models import (
    CompareRequest,
    DeletionResponse,
    DuplicateResponse,
    PersonalListResponse,
    ReopenRequest,
    RerankRequest,
    ResumeResponse,
    SessionResponse,
    StartRatingRequest,
)
from ..services import SessionStep
from ..state import get_state
from ..utils import (
    to_aggregate_card,
    to_change_cards,
    to_http_exception,
    to_item_card,
    to_ranked_cards,
    to_session_response,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/start", response_model=Union[SessionResponse, DuplicateResponse])
async def start_rating(request: StartRatingRequest):
    """Begin rating a new item. Answers {"status": "duplicate"} when it is already rated."""
    orchestrator = get_state().orchestrator
    item = RatedItem(
        external_id=request.external_id or None,
        title=request.title,
        tier=request.tier,
        category=request.category,
        genres=request.genres,
    )
    try:
        step = await orchestrator.start(request.user_id.strip(), item)
    except DuplicateRating as e:
        return DuplicateResponse(external_id=e.external_id)
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    return to_session_response(step)


@router.post("/sessions/reopen", response_model=SessionResponse)
async def reopen_session(request: ReopenRequest):
    """Reopen comparisons for an item left pending after an interrupted session."""
    try:
        step = await get_state().orchestrator.reopen(request.user_id.strip(), request.item_id)
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    return to_session_response(step)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    try:
        session = get_state().sessions.get(session_id)
    except RankingError as e:
        raise to_http_exception(e)
    return to_session_response(SessionStep(session))


@router.post("/sessions/{session_id}/compare", response_model=SessionResponse)
async def compare(session_id: str, request: CompareRequest):
    """Record one decision; the response carries the next pair or the finalized result."""
    try:
        step = await get_state().orchestrator.compare(session_id, request.pick)
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    return to_session_response(step)


@router.delete("/sessions/{session_id}")
async def abandon_session(session_id: str):
    try:
        item = await get_state().orchestrator.abandon(session_id)
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    return {"status": "abandoned", "session_id": session_id, "item_id": item.id}


@router.get("", response_model=PersonalListResponse)
async def get_list(user_id: str = Query(..., min_length=1), category: Category = Category.MOVIE):
    """The user's ordered list for one category (liked, neutral, disliked; best first)."""
    try:
        view = await get_state().orchestrator.load_list(user_id.strip(), category)
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    return PersonalListResponse(
        user_id=user_id,
        category=category,
        items=to_ranked_cards(view.items),
        pending=[to_item_card(i) for i in view.pending],
    )


@router.get("/lookup")
async def lookup(
    user_id: str = Query(..., min_length=1),
    external_id: str = Query(..., min_length=1),
    category: Optional[Category] = None,
):
    """Whether the user rated this content, and their score for it."""
    orchestrator = get_state().orchestrator
    try:
        rated = await orchestrator.has_rated(user_id.strip(), external_id, category)
        score = await orchestrator.personal_score(user_id.strip(), external_id, category) if rated else None
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    return {"user_id": user_id, "external_id": external_id, "rated": rated, "score": score}


@router.post("/resume", response_model=ResumeResponse)
async def resume(user_id: str = Query(..., min_length=1), category: Category = Category.MOVIE):
    """Finish interrupted insertions: count placed items and catch up lagging aggregates."""
    try:
        report = await get_state().orchestrator.resume(user_id.strip(), category)
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    return ResumeResponse(
        user_id=user_id,
        category=category,
        added=[i.id for i in report.added],
        replaced=[i.id for i in report.replaced],
        retired_duplicates=[i.id for i in report.retired_duplicates],
        awaiting_comparison=[to_item_card(i) for i in report.awaiting_comparison],
        rescored=len(report.changes),
    )


@router.post("/{item_id}/rerank", response_model=SessionResponse)
async def rerank(item_id: str, request: RerankRequest):
    """Re-rate an existing item into a (possibly different) tier."""
    try:
        step = await get_state().orchestrator.start_rerank(request.user_id.strip(), item_id, request.tier)
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    return to_session_response(step)


@router.delete("/{item_id}", response_model=DeletionResponse)
async def delete_rating(item_id: str, user_id: str = Query(..., min_length=1)):
    try:
        result = await get_state().orchestrator.delete(user_id.strip(), item_id)
    except (RankingError, ValueError) as e:
        raise to_http_exception(e)
    logger.info("[ratings] deleted item=%s user=%s", item_id, user_id)
    return DeletionResponse(
        deleted=to_item_card(result.item),
        changes=to_change_cards(result.changes),
        aggregate=to_aggregate_card(result.aggregate),
    )