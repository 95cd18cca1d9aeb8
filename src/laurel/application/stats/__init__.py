# Application Stats Package
from .rollup import apply_outcome, compute_streak
from .service import DeckOverview, StatsService

__all__ = ["apply_outcome", "compute_streak", "DeckOverview", "StatsService"]
