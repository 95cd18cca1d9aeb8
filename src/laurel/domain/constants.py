"""Centralized constants for Laurel.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ----------
INITIAL_EASE = 2.5
MIN_EASE = 1.3
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6
PASSING_QUALITY = 3
MIN_QUALITY = 0
MAX_QUALITY = 5
EASE_PRECISION = 2

# ---------- Review responses ----------
CORRECT_QUALITY = 4  # correct with hesitation
WRONG_QUALITY = 1  # incorrect but remembered

# ---------- Session summary ----------
MASTERY_SCALE = 10

# ---------- Decks ----------
DEFAULT_CATEGORY = "general"
DEFAULT_COLOR = "#4CAF50"
DEFAULT_NEW_CARDS_PER_DAY = 20
DEFAULT_REVIEW_CARDS_PER_DAY = 100
MAX_NEW_CARDS_PER_DAY = 100
MAX_REVIEW_CARDS_PER_DAY = 500

# ---------- Study queue ----------
DEFAULT_SESSION_SIZE = 20
MAX_SESSION_SIZE = 100

# ---------- Persistence ----------
PERSIST_RETRIES = 3
PERSIST_BACKOFF = 0.2  # seconds, doubled per attempt

# ---------- Stats ----------
DEFAULT_STATS_DAYS = 30
MAX_STATS_DAYS = 365

# ---------- Gamification ----------
LEVELS = [
    (1, "Seedling", 0),
    (2, "Sprout", 100),
    (3, "Sapling", 300),
    (4, "Growing", 600),
    (5, "Blooming", 1000),
    (6, "Flourishing", 1500),
    (7, "Thriving", 2500),
    (8, "Laurel Champion", 4000),
]

# ---------- IDs ----------
REVIEW_ID_PREFIX = "rev_"
CARD_ID_PREFIX = "card_"
DECK_ID_PREFIX = "deck_"
SESSION_ID_PREFIX = "sess_"
