"""Periodic capture of served leaderboards into ``leaderboard_history``.

Each run stores exactly what the API would serve right now, one row per
mode, so later requests can compute rank movement against it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime
import json

import sqlalchemy as sa
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logger import setup_logger
from app.core.security import now_utc
from app.services.aggregation import FetchFailed, RequestCache
from app.services.leaderboards import (
    Enrichment,
    LadderView,
    build_ladder_view,
    combined_view_from_results,
    fetch_board_results,
    get_leaderboards,
    ladder_view_from_rows,
    one_vs_one_faction_boards,
    to_ladder_out,
)
from app.services.rank_history import COMBINED_MODE, COMBINED_MULTI_MODE, leaderboard_mode
from app.services.relic import RelicClient

logger = setup_logger(__name__)

BOARD_SNAPSHOT_LIMIT = 200
COMBINED_SNAPSHOT_LIMIT = 1000


class NoSnapshotsCaptured(RuntimeError):
    pass


@dataclass(frozen=True)
class Snapshot:
    mode: str
    payload: dict
    player_count: int


@dataclass
class CaptureResult:
    snapshots: list[Snapshot] = field(default_factory=list)
    failed_modes: list[str] = field(default_factory=list)


def to_snapshot(mode: str, view: LadderView) -> Snapshot:
    payload = to_ladder_out(view).model_dump(mode="json", by_alias=True)
    return Snapshot(mode=mode, payload=payload, player_count=len(payload["rows"]))


async def capture_snapshots(
    client: RelicClient,
    enrichment: Enrichment,
    *,
    board_limit: int = BOARD_SNAPSHOT_LIMIT,
    combined_limit: int = COMBINED_SNAPSHOT_LIMIT,
) -> CaptureResult:
    """Snapshot every mode, downloading each ladder from Relic once.

    The 1v1 faction boards are fetched a single time and shared by both
    combined views and their own per-board snapshots.
    """
    cache = RequestCache()
    boards = await get_leaderboards(client, cache)
    faction_boards = one_vs_one_faction_boards(boards)
    faction_ids = {b.id for b in faction_boards}
    results = await fetch_board_results(
        client, faction_boards, max(settings.RELIC_ROWS_PER_BOARD, board_limit)
    )

    result = CaptureResult()
    jobs: list[tuple[str, object]] = [
        (COMBINED_MODE, combined_view_from_results(client, enrichment, results, limit=combined_limit, cache=cache)),
        (
            COMBINED_MULTI_MODE,
            combined_view_from_results(client, enrichment, results, limit=combined_limit, cache=cache, multi=True),
        ),
    ]
    for fetched in results:
        mode = leaderboard_mode(fetched.source.id)
        if isinstance(fetched, FetchFailed):
            result.failed_modes.append(mode)
            continue
        rows = [replace(r) for r in fetched.rows[:board_limit]]
        jobs.append((mode, ladder_view_from_rows(client, enrichment, fetched.source.id, rows, cache=cache)))
    jobs.extend(
        (leaderboard_mode(b.id), build_ladder_view(client, enrichment, b.id, limit=board_limit, cache=cache))
        for b in boards
        if b.id > 0 and b.id not in faction_ids
    )

    outcomes = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
    for (mode, _), outcome in zip(jobs, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error("Snapshot for %s failed: %s", mode, outcome)
            result.failed_modes.append(mode)
            continue
        result.snapshots.append(to_snapshot(mode, outcome))
    return result


def store_snapshots(db: Session, snapshots: list[Snapshot], captured_at: datetime | None = None) -> int:
    if not snapshots:
        raise NoSnapshotsCaptured("No snapshots captured")
    captured_at = captured_at or now_utc()
    db.execute(
        sa.text(
            """
            INSERT INTO leaderboard_history (mode, payload, player_count, captured_at)
            VALUES (:mode, CAST(:payload AS jsonb), :player_count, :captured_at)
            """
        ),
        [
            {
                "mode": s.mode,
                "payload": json.dumps(s.payload),
                "player_count": s.player_count,
                "captured_at": captured_at,
            }
            for s in snapshots
        ],
    )
    return len(snapshots)
