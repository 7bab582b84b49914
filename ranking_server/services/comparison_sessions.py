"""In-process registry of open comparison sessions."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from ranking.errors import SessionNotFound
from ranking.models import Category, RatedItem
from ranking.stages import Comparator


@dataclass(frozen=True)
class NewInsertion:
    """First-time rating of an item."""


@dataclass(frozen=True)
class ReRank:
    """Re-rating of an existing item; prior_item_id is retired when the new placement is finalized."""

    prior_item_id: str


InsertionMode = Union[NewInsertion, ReRank]


@dataclass
class InsertionSession:
    """One in-flight insertion: the subject item and the comparator placing it."""

    user_id: str
    item: RatedItem
    comparator: Comparator
    mode: InsertionMode = field(default_factory=NewInsertion)
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def category(self) -> Category:
        return self.item.category

    @property
    def prior_item_id(self) -> Optional[str]:
        return self.mode.prior_item_id if isinstance(self.mode, ReRank) else None


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, InsertionSession] = {}

    def open(self, session: InsertionSession) -> InsertionSession:
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> InsertionSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Session {session_id!r} not found")
        return session

    def close(self, session_id: str) -> Optional[InsertionSession]:
        return self._sessions.pop(session_id, None)

    def for_item(self, item_id: str) -> List[InsertionSession]:
        return [s for s in self._sessions.values() if s.item.id == item_id]

    def __len__(self) -> int:
        return len(self._sessions)
