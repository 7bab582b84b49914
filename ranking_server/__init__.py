"""
Pairwise Ranking API server

Usage: uvicorn ranking_server:app --reload --port 8000
"""

from .app import app
from .config import ServerConfig, get_config, reload_config
from .services import CommunityAggregateStore, InMemoryDocumentStore, InsertionOrchestrator, RatingStore

__all__ = [
    "app",
    "ServerConfig",
    "get_config",
    "reload_config",
    "CommunityAggregateStore",
    "InMemoryDocumentStore",
    "InsertionOrchestrator",
    "RatingStore",
]
