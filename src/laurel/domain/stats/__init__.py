# Domain Stats Package
from .models import DailyStats, DeckCounts, LearningStats

__all__ = ["DailyStats", "DeckCounts", "LearningStats"]
