"""Level lookup for the XP table. Pure functions over a sorted threshold table."""

from bisect import bisect_right
from dataclasses import dataclass

from laurel.domain.constants import LEVELS
from laurel.domain.dates import round_half_up_int

_THRESHOLDS = [xp for _, _, xp in LEVELS]


@dataclass(frozen=True)
class LevelInfo:
    level: int
    title: str
    next_level_xp: int  # threshold of the next level, or the current one at max level
    progress: int  # percent of the way to the next level, 100 at max level


@dataclass(frozen=True)
class XpAward:
    new_total: int
    level: LevelInfo
    leveled_up: bool


def level_for_xp(total_xp: int) -> LevelInfo:
    if total_xp < 0:
        raise ValueError(f"total_xp must be >= 0, got {total_xp}")

    index = bisect_right(_THRESHOLDS, total_xp) - 1
    level, title, required = LEVELS[index]

    if index + 1 >= len(LEVELS):
        return LevelInfo(level=level, title=title, next_level_xp=required, progress=100)

    next_required = LEVELS[index + 1][2]
    progress = round_half_up_int((total_xp - required) / (next_required - required) * 100)
    return LevelInfo(
        level=level,
        title=title,
        next_level_xp=next_required,
        progress=min(progress, 100),
    )


def award_xp(total_xp: int, amount: int) -> XpAward:
    if amount < 1:
        raise ValueError(f"amount must be >= 1, got {amount}")
    before = level_for_xp(total_xp)
    new_total = total_xp + amount
    after = level_for_xp(new_total)
    return XpAward(new_total=new_total, level=after, leveled_up=after.level > before.level)
