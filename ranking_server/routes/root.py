"""Root and health endpoints."""

from fastapi import APIRouter

from ..state import get_state

router = APIRouter()


@router.get("/")
def root():
    state = get_state()
    return {
        "name": "Pairwise Ranking API",
        "version": "1.0.0",
        "data_source": state.config.data_source,
        "open_sessions": len(state.sessions),
        "endpoints": {
            "ratings": [
                "/api/ratings",
                "/api/ratings/start",
                "/api/ratings/sessions/{id}/compare",
                "/api/ratings/{item_id}/rerank",
                "/api/ratings/resume",
            ],
            "community": ["/api/community", "/api/community/{content_id}"],
        },
    }


@router.get("/api/health")
def health():
    state = get_state()
    return {
        "status": "healthy",
        "document_store": type(state.docs).__name__,
    }
