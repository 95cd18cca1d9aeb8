# Domain Package
from .errors import (
    EmptySessionError,
    InvalidQualityError,
    InvalidStateError,
    NoCurrentCardError,
    ReviewEngineError,
)
from .models import (
    Card,
    CardState,
    Deck,
    ReviewOutcome,
    ReviewResponse,
    SchedulingState,
    SessionSummary,
)

__all__ = [
    "Card",
    "CardState",
    "Deck",
    "ReviewOutcome",
    "ReviewResponse",
    "SchedulingState",
    "SessionSummary",
    "ReviewEngineError",
    "InvalidQualityError",
    "EmptySessionError",
    "InvalidStateError",
    "NoCurrentCardError",
]
