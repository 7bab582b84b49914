"""Application state: document store, rating/aggregate stores, orchestrator."""

import logging
from pathlib import Path
from typing import Any, Optional

from ranking.models import RankingConfig

from .config import ServerConfig, get_config
from .services import (
    CommunityAggregateStore,
    InMemoryDocumentStore,
    InsertionOrchestrator,
    ListGuard,
    RatingStore,
    SessionRegistry,
)

logger = logging.getLogger(__name__)


class AppState:
    """Global application state."""

    def __init__(self, config: ServerConfig, docs: Optional[Any] = None):
        self.config = config
        self.ranking_config: RankingConfig = config.load_ranking_config()

        # Document store: Firestore when DATA_SOURCE=firebase, else in-memory
        self.docs = docs if docs is not None else self._create_document_store(config)
        logger.info("[startup] Document store: %s", type(self.docs).__name__)

        self.rating_store = RatingStore(self.docs)
        self.aggregate_store = CommunityAggregateStore(self.docs)
        self.list_guard = ListGuard()
        self.sessions = SessionRegistry()
        self.orchestrator = InsertionOrchestrator(
            self.rating_store,
            self.aggregate_store,
            guard=self.list_guard,
            sessions=self.sessions,
            config=self.ranking_config,
        )

    def _create_document_store(self, config: ServerConfig) -> Any:
        if config.data_source == "firebase":
            cred_path = config.firebase_credentials_path
            if cred_path and not Path(cred_path).is_file():
                raise ValueError(f"FIREBASE_CREDENTIALS_PATH is not a file: {cred_path}")
            from .services.firestore_document_store import FirestoreDocumentStore

            return FirestoreDocumentStore(
                project_id=config.firebase_project_id,
                credentials_path=cred_path,
                max_attempts=config.transaction_max_attempts,
            )
        return InMemoryDocumentStore(max_attempts=config.transaction_max_attempts)


_state: Optional[AppState] = None


def get_state() -> AppState:
    global _state
    if _state is None:
        config = get_config()
        _state = AppState(config)
    return _state


def reset_state(state: Optional[AppState] = None) -> Optional[AppState]:
    """Replace (or clear, with None) the global state. Used by tests and reloads."""
    global _state
    _state = state
    return _state
