"""Rank movement against persisted leaderboard snapshots.

Snapshots are the JSON documents previously served for a mode, written by the
historizer. Deltas are measured against the *second* most recent snapshot: the
most recent one is usually the same period as the live response.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.logger import setup_logger
from app.services.ladder import LadderRow

logger = setup_logger(__name__)

COMBINED_MODE = "combined-1v1"
COMBINED_MULTI_MODE = "combined-1v1-multi"


def leaderboard_mode(leaderboard_id: int) -> str:
    return f"leaderboard:{leaderboard_id}"


@dataclass(frozen=True)
class ByLeaderboard:
    profile_id: str
    leaderboard_id: int

    def __str__(self) -> str:
        return f"{self.profile_id}:{self.leaderboard_id}"


@dataclass(frozen=True)
class ByFaction:
    profile_id: str
    faction: str

    def __str__(self) -> str:
        return f"{self.profile_id}:{self.faction}"


@dataclass(frozen=True)
class UnknownSource:
    profile_id: str

    def __str__(self) -> str:
        return f"{self.profile_id}:unknown"


SourceKey = Union[ByLeaderboard, ByFaction, UnknownSource]
KeyFn = Callable[[dict], Optional[str]]


def source_key(profile_id: str, leaderboard_id=None, faction: str | None = None) -> SourceKey:
    # leaderboardId, then faction, then "unknown". Snapshots written before
    # leaderboardId existed only carry the faction.
    if leaderboard_id is not None and leaderboard_id != "":
        return ByLeaderboard(profile_id, leaderboard_id)
    if faction:
        return ByFaction(profile_id, faction)
    return UnknownSource(profile_id)


def profile_key(row: dict) -> str | None:
    profile_id = row.get("profileId")
    return str(profile_id) if profile_id else None


def multi_key(row: dict) -> str | None:
    profile_id = row.get("profileId")
    if not profile_id:
        return None
    return str(source_key(str(profile_id), row.get("leaderboardId"), row.get("faction")))


def _row_as_wire(row: LadderRow) -> dict:
    return {
        "profileId": row.profile_id,
        "leaderboardId": getattr(row, "leaderboard_id", None),
        "faction": row.faction,
    }


def baseline_rank_map(snapshots: list[dict], key_fn: KeyFn) -> dict[str, int]:
    """Map of key -> rank from the snapshot preceding the latest one.

    ``snapshots`` are payloads ordered newest first.
    """
    if len(snapshots) < 2:
        return {}
    out: dict[str, int] = {}
    for row in (snapshots[1] or {}).get("rows") or []:
        key = key_fn(row)
        rank = row.get("rank")
        if key is None or not isinstance(rank, int) or isinstance(rank, bool):
            continue
        out.setdefault(key, rank)
    return out


def apply_rank_deltas(rows: list[LadderRow], baseline: dict[str, int], key_fn: KeyFn) -> None:
    for row in rows:
        key = key_fn(_row_as_wire(row))
        previous = baseline.get(key) if key is not None else None
        row.rank_delta = previous - row.rank if previous is not None else None


def load_recent_snapshots(db: Session, mode: str, limit: int = 2) -> list[dict]:
    try:
        rows = db.execute(
            sa.text(
                """
                SELECT payload
                FROM leaderboard_history
                WHERE mode=:mode
                ORDER BY captured_at DESC, id DESC
                LIMIT :limit
                """
            ),
            {"mode": mode, "limit": limit},
        ).mappings().all()
    except SQLAlchemyError:
        logger.warning("Snapshot lookup failed for mode %s", mode, exc_info=True)
        db.rollback()
        return []
    return [r["payload"] or {} for r in rows]
