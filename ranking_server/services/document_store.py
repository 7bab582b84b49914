"""
Document store abstraction.

Backs rated items (users/{user_id}/rankings/{item_id}) and community
aggregates (ratings/{content_id}). Implementations: in-memory (local runs and
tests), Firestore (production). Swap via DATA_SOURCE.

Transactions are optimistic: read, compute, write-if-unchanged, retry on
conflict. All reads inside a transaction must happen before its writes.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, Type

from ranking.errors import StoreUnavailable, TransactionConflict

logger = logging.getLogger(__name__)


class Transaction(Protocol):
    """Handle passed to a transaction function."""

    async def get(self, path: str) -> Optional[Dict]:
        """Read a document inside the transaction (None if missing)."""
        ...

    def set(self, path: str, data: Dict) -> None:
        """Stage a full overwrite of the document."""
        ...

    def delete(self, path: str) -> None:
        """Stage deletion of the document."""
        ...


TransactionFn = Callable[[Transaction], Awaitable[Any]]


class DocumentStore(Protocol):
    """Protocol for per-document reads/writes and atomic read-modify-write."""

    async def get(self, path: str) -> Optional[Dict]:
        ...

    async def set(self, path: str, data: Dict) -> None:
        ...

    async def delete(self, path: str) -> bool:
        """Delete one document. Return True if it existed."""
        ...

    async def list(self, collection_path: str) -> List[Tuple[str, Dict]]:
        """Return (doc_id, data) for every document directly in the collection."""
        ...

    async def run_transaction(self, fn: TransactionFn) -> Any:
        """Run fn atomically, retrying on conflict; raise TransactionConflict when attempts run out."""
        ...


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


@dataclass
class _Fault:
    op: str
    path_prefix: Optional[str]
    remaining: int
    exc_type: Type[Exception]
    skip: int = 0


class _InMemoryTransaction:
    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self.reads: Dict[str, int] = {}
        self.writes: Dict[str, Optional[Dict]] = {}

    async def get(self, path: str) -> Optional[Dict]:
        if self.writes:
            raise ValueError("Transaction reads must happen before writes")
        self._store._maybe_fail("get", path)
        self.reads[path] = self._store._versions.get(path, 0)
        data = self._store._docs.get(path)
        # Yield so concurrent transactions interleave between read and commit.
        await asyncio.sleep(0)
        return copy.deepcopy(data)

    def set(self, path: str, data: Dict) -> None:
        self.writes[path] = copy.deepcopy(data)

    def delete(self, path: str) -> None:
        self.writes[path] = None


class InMemoryDocumentStore:
    """
    Versioned in-process document store with optimistic transactions.

    fail_next() injects StoreUnavailable (or another error) into the next
    matching operation, which is how tests simulate crashes mid-protocol.
    """

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self._docs: Dict[str, Dict] = {}
        self._versions: Dict[str, int] = {}
        self._faults: List[_Fault] = []
        self.conflicts = 0

    # ------------------------------------------------------------------
    # Fault injection
    # ------------------------------------------------------------------

    def fail_next(
        self,
        op: str,
        path_prefix: Optional[str] = None,
        times: int = 1,
        exc_type: Type[Exception] = StoreUnavailable,
        after: int = 0,
    ) -> None:
        """
        Make `times` matching ops raise, after letting the first `after` matches through.
        op: get, set, delete, list, commit.
        """
        self._faults.append(_Fault(op, path_prefix, times, exc_type, skip=after))

    def _maybe_fail(self, op: str, path: str) -> None:
        for fault in self._faults:
            if fault.op != op or fault.remaining <= 0:
                continue
            if fault.path_prefix and not path.startswith(fault.path_prefix):
                continue
            if fault.skip > 0:
                fault.skip -= 1
                continue
            fault.remaining -= 1
            self._faults = [f for f in self._faults if f.remaining > 0]
            raise fault.exc_type(f"injected failure on {op} {path}")

    # ------------------------------------------------------------------
    # Plain operations
    # ------------------------------------------------------------------

    def _write(self, path: str, data: Optional[Dict]) -> None:
        self._versions[path] = self._versions.get(path, 0) + 1
        if data is None:
            self._docs.pop(path, None)
        else:
            self._docs[path] = data

    async def get(self, path: str) -> Optional[Dict]:
        self._maybe_fail("get", path)
        return copy.deepcopy(self._docs.get(path))

    async def set(self, path: str, data: Dict) -> None:
        self._maybe_fail("set", path)
        self._write(path, copy.deepcopy(data))

    async def delete(self, path: str) -> bool:
        self._maybe_fail("delete", path)
        existed = path in self._docs
        if existed:
            self._write(path, None)
        return existed

    async def list(self, collection_path: str) -> List[Tuple[str, Dict]]:
        self._maybe_fail("list", collection_path)
        collection_path = collection_path.rstrip("/")
        return [
            (path.rsplit("/", 1)[-1], copy.deepcopy(data))
            for path, data in sorted(self._docs.items())
            if _parent(path) == collection_path
        ]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _commit(self, txn: _InMemoryTransaction) -> bool:
        # No await between the version check and the writes, so this is atomic
        # with respect to other tasks on the loop.
        for path, version in txn.reads.items():
            if self._versions.get(path, 0) != version:
                return False
        for path in txn.writes:
            self._maybe_fail("commit", path)
        for path, data in txn.writes.items():
            self._write(path, data)
        return True

    async def run_transaction(self, fn: TransactionFn) -> Any:
        for attempt in range(1, self.max_attempts + 1):
            txn = _InMemoryTransaction(self)
            result = await fn(txn)
            if self._commit(txn):
                return result
            self.conflicts += 1
            logger.info("[store] TRANSACTION_RETRY attempt=%s/%s", attempt, self.max_attempts)
        raise TransactionConflict(f"Transaction failed after {self.max_attempts} attempts")
