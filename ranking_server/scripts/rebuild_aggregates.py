#!/usr/bin/env python3
"""
Rebuild every community aggregate (ratings/{content_id}) from users' rankings.

Recovery path for aggregates known to have drifted: reads every
users/{uid}/rankings document, collapses duplicate content per user, counts
each placed item once at its current score, rewrites ratings/, and stamps
each counted item's communityScore so later reconciles see nothing pending.
Collapsed duplicates get their communityScore cleared, so a reconcile
retires them without uncounting anything.

Requires:
  - GOOGLE_APPLICATION_CREDENTIALS env var or --credentials pointing to a
    Firebase service account JSON key.

Usage:
  From repo root:
    python -m ranking_server.scripts.rebuild_aggregates --credentials path/to/serviceAccountKey.json
  Preview without writing:
    python -m ranking_server.scripts.rebuild_aggregates --dry-run
"""

import argparse
import logging
import os
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Tuple

import firebase_admin
from firebase_admin import credentials, firestore

from ranking.models import CommunityAggregate, RatedItem, RatingState
from ranking.stages import collapse_duplicates, rebuild_from_ratings
from ranking_server.services.rating_store import rating_path

logger = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).resolve().parent.parent.parent

BATCH_SIZE = 500  # Firestore batch write limit
AGGREGATES_COLLECTION = "ratings"


def plan_rebuild(
    items_by_user: Dict[str, List[RatedItem]],
) -> Tuple[Dict[str, CommunityAggregate], List[Tuple[str, RatedItem]], List[Tuple[str, RatedItem]]]:
    """
    Return (aggregates by content id, (user_id, item) pairs to stamp as counted,
    (user_id, item) pairs whose stale communityScore must be cleared).
    Only one item per (user, category, external id) counts; collapsed
    duplicates and unplaced items are released so a later reconcile never
    uncounts a rating the rebuild did not count.
    """
    counted: List[Tuple[str, RatedItem]] = []
    released: List[Tuple[str, RatedItem]] = []
    for user_id, items in items_by_user.items():
        by_category: Dict[str, List[RatedItem]] = defaultdict(list)
        for item in items:
            if item.placed:
                by_category[item.category.value].append(item)
            elif item.is_counted:
                released.append((user_id, item))
        for category_items in by_category.values():
            kept, dropped = collapse_duplicates(category_items)
            counted.extend((user_id, item) for item in kept)
            released.extend((user_id, item) for item in dropped if item.is_counted)
    aggregates = rebuild_from_ratings(item for _, item in counted)
    return aggregates, counted, released


def ledger_stamps(
    counted: List[Tuple[str, RatedItem]],
    released: List[Tuple[str, RatedItem]],
) -> List[Tuple[str, Dict]]:
    """Merge-writes for users/{uid}/rankings documents matching a rebuilt ratings/ collection."""
    stamps = []
    for user_id, item in counted:
        state = RatingState.UPDATED if item.state == RatingState.UPDATED else RatingState.COMMITTED
        stamps.append((rating_path(user_id, item.id), {"communityScore": item.score, "state": state.value}))
    for user_id, item in released:
        stamps.append((rating_path(user_id, item.id), {"communityScore": None}))
    return stamps


def _read_rankings(db) -> Dict[str, List[RatedItem]]:
    items_by_user: Dict[str, List[RatedItem]] = defaultdict(list)
    for doc in db.collection_group("rankings").stream():
        user_ref = doc.reference.parent.parent
        if user_ref is None:
            continue
        data = doc.to_dict() or {}
        data.setdefault("id", doc.id)
        try:
            items_by_user[user_ref.id].append(RatedItem.from_document(data))
        except ValueError as e:
            logger.warning("skipping unreadable ranking %s/%s: %s", user_ref.id, doc.id, e)
    return items_by_user


def _commit_in_batches(db, writes: List[Tuple[str, object]], label: str) -> int:
    """writes: (document path, data dict or None for delete)."""
    total = 0
    for i in range(0, len(writes), BATCH_SIZE):
        batch = db.batch()
        chunk = writes[i : i + BATCH_SIZE]
        for path, data in chunk:
            ref = db.document(path)
            if data is None:
                batch.delete(ref)
            else:
                batch.set(ref, data, merge=True)
            total += 1
        batch.commit()
        print(f"  {label}: committed batch {i // BATCH_SIZE + 1} ({len(chunk)} docs)")
    return total


def rebuild(db, dry_run: bool = False) -> Dict[str, int]:
    items_by_user = _read_rankings(db)
    aggregates, counted, released = plan_rebuild(items_by_user)
    existing_ids = {doc.id for doc in db.collection(AGGREGATES_COLLECTION).stream()}
    stale_ids = existing_ids - set(aggregates)

    print(
        f"  users={len(items_by_user)} counted_items={len(counted)} released_items={len(released)} "
        f"aggregates={len(aggregates)} stale={len(stale_ids)}"
    )
    if dry_run:
        return {"aggregates": len(aggregates), "stamped": 0, "deleted": 0}

    aggregate_writes = [
        (f"{AGGREGATES_COLLECTION}/{cid}", agg.to_document()) for cid, agg in aggregates.items()
    ]
    aggregate_writes += [(f"{AGGREGATES_COLLECTION}/{cid}", None) for cid in sorted(stale_ids)]
    stamps = ledger_stamps(counted, released)

    n_agg = _commit_in_batches(db, aggregate_writes, "ratings")
    n_stamp = _commit_in_batches(db, stamps, "rankings")
    return {"aggregates": len(aggregates), "stamped": n_stamp, "deleted": n_agg - len(aggregates)}


def main():
    parser = argparse.ArgumentParser(description="Rebuild community aggregates from user rankings")
    parser.add_argument(
        "--credentials",
        type=str,
        default=None,
        metavar="PATH",
        help="Path to Firebase service account JSON key. Else uses GOOGLE_APPLICATION_CREDENTIALS.",
    )
    parser.add_argument("--project-id", type=str, default=os.environ.get("FIREBASE_PROJECT_ID"))
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    cred_path = args.credentials or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if not cred_path:
        print("Provide --credentials PATH or set GOOGLE_APPLICATION_CREDENTIALS.")
        sys.exit(1)
    cred_path = Path(cred_path)
    if not cred_path.is_absolute():
        cred_path = (_REPO_ROOT / cred_path).resolve()
    if not cred_path.exists():
        print(f"Credentials file not found: {cred_path}")
        sys.exit(1)

    print("Initializing Firebase Admin...")
    if not firebase_admin._apps:
        cred = credentials.Certificate(str(cred_path))
        firebase_admin.initialize_app(cred, {"projectId": args.project_id} if args.project_id else None)
    db = firestore.client()

    print("Rebuilding community aggregates...")
    summary = rebuild(db, dry_run=args.dry_run)
    print(f"Done. {summary}")


if __name__ == "__main__":
    main()
