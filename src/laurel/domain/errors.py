"""
Error taxonomy for the review engine and its collaborators.

Engine errors are caller contract violations and are raised immediately.
Store errors come from adapters and are the only retryable kind.
"""


class ReviewEngineError(Exception):
    """Base class for scheduler and session errors."""


class InvalidQualityError(ReviewEngineError, ValueError):
    """Quality score outside [0, 5] or not an integer."""

    def __init__(self, quality: object):
        self.quality = quality
        super().__init__(f"Quality must be an integer between 0 and 5, got {quality!r}")


class EmptySessionError(ReviewEngineError):
    """A review session was started with no cards."""

    def __init__(self, message: str = "Nothing to review right now"):
        super().__init__(message)


class InvalidStateError(ReviewEngineError):
    """An operation was invoked in the wrong session state."""


class NoCurrentCardError(InvalidStateError):
    """current_card() was called on a completed session."""


class StoreError(Exception):
    """A card store adapter failed to read or write."""


class NotFoundError(StoreError):
    """A deck or card does not exist in the store."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class SessionNotFoundError(LookupError):
    """No live review session with the given id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class PersistenceError(Exception):
    """Writing a review outcome failed after every retry.

    The in-memory session has already advanced; the outcome is kept so the
    write can be retried without responding again.
    """

    def __init__(self, review_id: str, attempts: int, cause: Exception):
        self.review_id = review_id
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Failed to persist review {review_id} after {attempts} attempts: {cause}")


class DeckImportError(ValueError):
    """A deck file could not be parsed or validated."""
