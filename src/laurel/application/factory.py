"""
Card Store Factory
Centralizes the logic for selecting the card store adapter.
"""

import logging

from laurel.application.config import AppConfig
from laurel.domain.ports import CardStore
from laurel.infrastructure.adapters.memory_store import InMemoryCardStore
from laurel.infrastructure.adapters.sqlite_store import SqliteCardStore

logger = logging.getLogger(__name__)


def get_card_store(config: AppConfig) -> CardStore:
    """
    Returns the CardStore implementation selected by config.backend.
    """
    if config.backend == "memory":
        logger.debug("Backend: memory")
        return InMemoryCardStore()

    logger.debug(f"Backend: sqlite ({config.database_path})")
    return SqliteCardStore(config.database_path)
