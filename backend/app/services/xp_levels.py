from __future__ import annotations

from dataclasses import dataclass

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.logger import setup_logger

logger = setup_logger(__name__)

MAX_LEVEL = 250
XP_CAP = 6_000_000
LOOKUP_CHUNK_SIZE = 50


def _cost_of_level(level: int) -> int:
    if level <= 10:
        return 10_000
    if level <= 20:
        return 15_000
    return 25_000


def _build_thresholds() -> list[tuple[int, int, int]]:
    out: list[tuple[int, int, int]] = []
    floor = 0
    for level in range(1, MAX_LEVEL + 1):
        ceiling = floor + _cost_of_level(level) - 1
        out.append((level, floor, ceiling))
        floor = ceiling + 1
    return out


# (level, min_xp, max_xp), inclusive and contiguous from 0
LEVEL_THRESHOLDS = _build_thresholds()


@dataclass(frozen=True)
class LevelDetails:
    level: int
    xp_in_level: int
    xp_for_next: int
    progress_percent: float


def level_from_xp(xp: int | None) -> int:
    if not xp or xp <= 0:
        return 1
    if xp >= XP_CAP:
        return MAX_LEVEL

    left = 0
    right = len(LEVEL_THRESHOLDS) - 1
    while left <= right:
        mid = (left + right) // 2
        level, lo, hi = LEVEL_THRESHOLDS[mid]
        if xp < lo:
            right = mid - 1
        elif xp > hi:
            left = mid + 1
        else:
            return level
    # Past the last computed range but under the cap.
    return MAX_LEVEL


def level_details(xp: int | None) -> LevelDetails:
    level = level_from_xp(xp)
    if not xp or xp <= 0:
        return LevelDetails(level=1, xp_in_level=0, xp_for_next=_cost_of_level(1), progress_percent=0.0)
    if level == MAX_LEVEL:
        return LevelDetails(level=level, xp_in_level=0, xp_for_next=0, progress_percent=100.0)

    _, lo, hi = LEVEL_THRESHOLDS[level - 1]
    xp_in_level = xp - lo
    span = hi - lo + 1
    return LevelDetails(
        level=level,
        xp_in_level=xp_in_level,
        xp_for_next=hi + 1 - xp,
        progress_percent=min(100.0, round(xp_in_level / span * 100, 2)),
    )


def load_levels(db: Session, profile_ids: list[str]) -> dict[str, int]:
    numeric_ids = sorted({int(pid) for pid in profile_ids if str(pid).isdigit()})
    out: dict[str, int] = {}
    for i in range(0, len(numeric_ids), LOOKUP_CHUNK_SIZE):
        chunk = numeric_ids[i:i + LOOKUP_CHUNK_SIZE]
        try:
            rows = db.execute(
                sa.text("SELECT profile_id, xp FROM players WHERE profile_id = ANY(:ids)"),
                {"ids": chunk},
            ).mappings().all()
        except SQLAlchemyError:
            logger.warning("Player level lookup failed for %d profiles", len(chunk), exc_info=True)
            db.rollback()
            continue
        for r in rows:
            out[str(r["profile_id"])] = level_from_xp(r["xp"])
    return out
