"""Backend services: document stores, rating/aggregate stores, list guards, orchestration."""

from .aggregate_store import AggregateWrite, CommunityAggregateStore, ContributionStamp
from .comparison_sessions import InsertionMode, InsertionSession, NewInsertion, ReRank, SessionRegistry
from .document_store import DocumentStore, InMemoryDocumentStore, Transaction
from .list_guard import ListActivity, ListGuard
from .orchestrator import (
    DeletionResult,
    InsertionOrchestrator,
    InsertionResult,
    ListView,
    RatingEvent,
    ReconcileReport,
    SessionStep,
)
from .rating_store import RatingStore

__all__ = [
    "AggregateWrite",
    "CommunityAggregateStore",
    "ContributionStamp",
    "DeletionResult",
    "DocumentStore",
    "InMemoryDocumentStore",
    "InsertionMode",
    "InsertionOrchestrator",
    "InsertionResult",
    "InsertionSession",
    "ListActivity",
    "ListGuard",
    "ListView",
    "NewInsertion",
    "RatingEvent",
    "RatingStore",
    "ReRank",
    "ReconcileReport",
    "SessionRegistry",
    "SessionStep",
    "Transaction",
]
