"""
Pairwise Ranking API — FastAPI app factory.

Use: uvicorn ranking_server.app:app
Or:  from ranking_server import app
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_config
from .routes import register_routes
from .state import get_state

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app() -> FastAPI:
    """Build FastAPI app with CORS, routes, and startup."""
    config = get_config()
    configure_logging(config.log_level)
    app = FastAPI(
        title="Pairwise Ranking API",
        description="Personal rankings by pairwise comparison, with community aggregates",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_routes(app)

    @app.on_event("startup")
    async def _startup_logging():
        ok, errors = config.validate()
        for error in errors:
            logger.warning("[startup] config: %s", error)
        state = get_state()
        logger.info(
            "[startup] Pairwise Ranking API starting (data_source=%s, store=%s, config_ok=%s)",
            state.config.data_source, type(state.docs).__name__, ok,
        )

    return app


app = create_app()
