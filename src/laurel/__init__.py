"""Laurel: SM-2 spaced repetition scheduling and review sessions."""

from laurel.consts import VERSION

__version__ = VERSION
