"""Register all route modules on the FastAPI app."""

from fastapi import FastAPI

from .root import router as root_router
from .ratings import router as ratings_router
from .community import router as community_router


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the app."""
    app.include_router(root_router)
    app.include_router(ratings_router, prefix="/api/ratings", tags=["ratings"])
    app.include_router(community_router, prefix="/api/community", tags=["community"])
