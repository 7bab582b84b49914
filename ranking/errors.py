"""
Error kinds raised by the ranking core and its stores.

None of these is fatal: each has a defined recovery. DuplicateRating is a
silent abort, InvalidScore a logged no-op, TransactionConflict is retried by
the store before it ever surfaces, CorruptAggregate is recovered by reseeding,
and StoreUnavailable leaves the item in a resumable state.
"""


class RankingError(Exception):
    """Base class for ranking errors."""


class DuplicateRating(RankingError):
    """The user already has a rating for this external content id."""

    def __init__(self, external_id: str):
        super().__init__(f"Content {external_id!r} is already rated")
        self.external_id = external_id


class InvalidScore(RankingError):
    """A score argument was NaN or infinite."""

    def __init__(self, score: float, context: str = ""):
        msg = f"Invalid score {score!r}"
        if context:
            msg += f" ({context})"
        super().__init__(msg)
        self.score = score


class TransactionConflict(RankingError):
    """A concurrent writer kept winning after all transaction attempts."""


class CorruptAggregate(RankingError):
    """A stored aggregate failed its invariant checks."""

    def __init__(self, content_id: str, detail: str = ""):
        super().__init__(f"Corrupt aggregate {content_id!r}: {detail}")
        self.content_id = content_id


class StoreUnavailable(RankingError):
    """The backing document store could not be reached."""


class ListBusy(RankingError):
    """A personal list is held by another writer and the caller would not wait."""


class RatingNotFound(RankingError):
    """No rated item with this id in the user's list."""


class SessionNotFound(RankingError):
    """No open comparison session with this id."""
