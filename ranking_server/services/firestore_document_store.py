"""
Firestore document store: rated items in users/{user_id}/rankings, community
aggregates in ratings/{content_id}.

Used when DATA_SOURCE=firebase. Uses google.cloud.firestore.AsyncClient with
service-account credentials; transactions go through async_transactional so
Firestore's own optimistic retry applies.
"""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from google.api_core import exceptions as gexc
from google.cloud.firestore import AsyncClient, async_transactional
from google.oauth2 import service_account

from ranking.errors import StoreUnavailable, TransactionConflict

from .document_store import TransactionFn

logger = logging.getLogger(__name__)

# Raised by the Firestore client when a transaction exhausts max_attempts.
_EXCEEDED_ATTEMPTS_PREFIX = "Failed to commit transaction"


def _project_id_from_credentials_file(credentials_path: Union[Path, str]) -> Optional[str]:
    """Read project_id from a Google service account JSON file if present."""
    try:
        path = Path(credentials_path)
        if not path.is_file():
            return None
        with open(path) as f:
            data = json.load(f)
        return data.get("project_id") or data.get("projectId")
    except (OSError, ValueError):
        return None


@contextmanager
def _translated_errors(op: str, path: str):
    try:
        yield
    except (gexc.ServiceUnavailable, gexc.DeadlineExceeded) as e:
        logger.warning("[firestore] STORE_UNAVAILABLE op=%s path=%s error=%s", op, path, e)
        raise StoreUnavailable(f"Firestore {op} {path}: {e}") from e
    except gexc.Aborted as e:
        raise TransactionConflict(f"Firestore {op} {path}: {e}") from e
    except ValueError as e:
        if str(e).startswith(_EXCEEDED_ATTEMPTS_PREFIX):
            raise TransactionConflict(str(e)) from e
        raise


class _FirestoreTransaction:
    def __init__(self, db: AsyncClient, transaction: Any):
        self._db = db
        self._transaction = transaction

    async def get(self, path: str) -> Optional[Dict]:
        snap = await self._db.document(path).get(transaction=self._transaction)
        return snap.to_dict() if snap.exists else None

    def set(self, path: str, data: Dict) -> None:
        self._transaction.set(self._db.document(path), data)

    def delete(self, path: str) -> None:
        self._transaction.delete(self._db.document(path))


class FirestoreDocumentStore:
    """DocumentStore backed by Cloud Firestore (AsyncClient)."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        credentials_path: Optional[Union[Path, str]] = None,
        *,
        max_attempts: int = 5,
    ):
        self.max_attempts = max_attempts
        if credentials_path:
            resolved = str(Path(credentials_path).resolve())
            creds = service_account.Credentials.from_service_account_file(resolved)
            proj = project_id or _project_id_from_credentials_file(resolved)
            self._db = AsyncClient(project=proj, credentials=creds)
        else:
            # Application default credentials
            proj = project_id
            self._db = AsyncClient(project=proj)
        logger.info("[firestore] Async client initialized (project=%s)", proj or "inferred")

    async def get(self, path: str) -> Optional[Dict]:
        with _translated_errors("get", path):
            snap = await self._db.document(path).get()
        return snap.to_dict() if snap.exists else None

    async def set(self, path: str, data: Dict) -> None:
        with _translated_errors("set", path):
            await self._db.document(path).set(data)

    async def delete(self, path: str) -> bool:
        ref = self._db.document(path)
        with _translated_errors("delete", path):
            snap = await ref.get()
            if not snap.exists:
                return False
            await ref.delete()
        return True

    async def list(self, collection_path: str) -> List[Tuple[str, Dict]]:
        out = []
        with _translated_errors("list", collection_path):
            async for doc in self._db.collection(collection_path).stream():
                out.append((doc.id, doc.to_dict()))
        return out

    async def run_transaction(self, fn: TransactionFn) -> Any:
        transaction = self._db.transaction(max_attempts=self.max_attempts)

        @async_transactional
        async def _run(txn):
            return await fn(_FirestoreTransaction(self._db, txn))

        with _translated_errors("transaction", "-"):
            return await _run(transaction)
