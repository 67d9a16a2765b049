from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.logger import setup_logger
from app.core.security import now_utc
from app.schemas.leaderboard import LadderOut, LadderRowOut
from app.services.aggregation import (
    FetchFailed,
    FetchOk,
    FetchResult,
    RequestCache,
    aggregate_best,
    failures,
    rank_all_entries,
)
from app.services.factions import is_known_faction
from app.services.ladder import LadderRow, Leaderboard
from app.services.names import fill_missing_names, resolve_names
from app.services.rank_history import (
    COMBINED_MODE,
    COMBINED_MULTI_MODE,
    KeyFn,
    apply_rank_deltas,
    baseline_rank_map,
    leaderboard_mode,
    load_recent_snapshots,
    multi_key,
    profile_key,
)
from app.services.relic import RelicClient, RelicFetchError
from app.services.xp_levels import load_levels

logger = setup_logger(__name__)


class LeaderboardUnavailable(RuntimeError):
    pass


class Enrichment(Protocol):
    async def levels(self, profile_ids: list[str]) -> dict[str, int]:
        ...

    async def snapshots(self, mode: str) -> list[dict]:
        ...


class DbEnrichment:
    # One Session is not safe across threads; calls are serialized.
    def __init__(self, db: Session):
        self.db = db
        self._lock = asyncio.Lock()

    async def levels(self, profile_ids: list[str]) -> dict[str, int]:
        async with self._lock:
            return await run_in_threadpool(load_levels, self.db, profile_ids)

    async def snapshots(self, mode: str) -> list[dict]:
        async with self._lock:
            return await run_in_threadpool(load_recent_snapshots, self.db, mode)


class NoEnrichment:
    async def levels(self, profile_ids: list[str]) -> dict[str, int]:
        return {}

    async def snapshots(self, mode: str) -> list[dict]:
        return []


@dataclass
class LadderView:
    leaderboard_id: int | str
    rows: list[LadderRow]
    last_updated: datetime = field(default_factory=now_utc)
    diagnostics: list[FetchFailed] = field(default_factory=list)


async def get_leaderboards(client: RelicClient, cache: RequestCache) -> list[Leaderboard]:
    if cache.leaderboards is None:
        cache.leaderboards = await client.fetch_leaderboards()
    return cache.leaderboards


def one_vs_one_faction_boards(boards: list[Leaderboard]) -> list[Leaderboard]:
    return [b for b in boards if b.match_type == "1v1" and is_known_faction(b.faction)]


async def fetch_board_results(client: RelicClient, boards: list[Leaderboard], rows_per_board: int) -> list[FetchResult]:
    outcomes = await asyncio.gather(
        *(client.fetch_ladder_rows(board.id, rows_per_board) for board in boards),
        return_exceptions=True,
    )
    results: list[FetchResult] = []
    for board, outcome in zip(boards, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning("Board %s (%s) dropped from aggregation: %s", board.id, board.faction, outcome)
            results.append(FetchFailed(source=board, error=str(outcome)))
        else:
            results.append(FetchOk(source=board, rows=outcome))
    return results


async def _annotate(
    client: RelicClient,
    enrichment: Enrichment,
    rows: list[LadderRow],
    *,
    mode: str,
    key_fn: KeyFn,
    cache: RequestCache,
) -> None:
    missing = [r.profile_id for r in rows if not r.player_name]
    names = {}
    if missing:
        names = await resolve_names(
            client.fetch_player_summaries,
            missing,
            batch_size=settings.NAME_BATCH_SIZE,
            delay_seconds=settings.NAME_BATCH_DELAY_SECONDS,
            cache=cache,
        )
    fill_missing_names(rows, names)

    wanted = list(dict.fromkeys(r.profile_id for r in rows if r.profile_id not in cache.levels))
    if wanted:
        found = await enrichment.levels(wanted)
        cache.levels.update({pid: found.get(pid) for pid in wanted})
    for row in rows:
        row.level = cache.levels.get(row.profile_id)

    snapshots = await enrichment.snapshots(mode)
    apply_rank_deltas(rows, baseline_rank_map(snapshots, key_fn), key_fn)


async def build_ladder_view(
    client: RelicClient,
    enrichment: Enrichment,
    leaderboard_id: int,
    *,
    limit: int,
    cache: RequestCache,
) -> LadderView:
    rows = await client.fetch_ladder_rows(leaderboard_id, limit)
    return await ladder_view_from_rows(client, enrichment, leaderboard_id, rows, cache=cache)


async def ladder_view_from_rows(
    client: RelicClient,
    enrichment: Enrichment,
    leaderboard_id: int,
    rows: list[LadderRow],
    *,
    cache: RequestCache,
) -> LadderView:
    await _annotate(
        client,
        enrichment,
        rows,
        mode=leaderboard_mode(leaderboard_id),
        key_fn=profile_key,
        cache=cache,
    )
    return LadderView(leaderboard_id=leaderboard_id, rows=rows)


async def fetch_faction_results(
    client: RelicClient,
    *,
    rows_per_board: int,
    cache: RequestCache,
) -> list[FetchResult]:
    try:
        boards = one_vs_one_faction_boards(await get_leaderboards(client, cache))
    except RelicFetchError as exc:
        raise LeaderboardUnavailable(f"leaderboard list unavailable ({exc.reason})") from exc
    if not boards:
        raise LeaderboardUnavailable("no 1v1 faction boards listed")
    return await fetch_board_results(client, boards, rows_per_board)


async def combined_view_from_results(
    client: RelicClient,
    enrichment: Enrichment,
    results: list[FetchResult],
    *,
    limit: int,
    cache: RequestCache,
    multi: bool = False,
) -> LadderView:
    """Rank already fetched boards; ``results`` is only read, never mutated."""
    mode = COMBINED_MULTI_MODE if multi else COMBINED_MODE
    diagnostics = failures(results)
    if len(diagnostics) == len(results):
        raise LeaderboardUnavailable(f"{mode}: every board failed")

    ranked = rank_all_entries(results) if multi else aggregate_best(results)
    rows = ranked[:limit]
    await _annotate(
        client,
        enrichment,
        rows,
        mode=mode,
        key_fn=multi_key if multi else profile_key,
        cache=cache,
    )
    return LadderView(leaderboard_id=mode, rows=rows, diagnostics=diagnostics)


async def build_combined_view(
    client: RelicClient,
    enrichment: Enrichment,
    *,
    limit: int,
    rows_per_board: int,
    cache: RequestCache,
    multi: bool = False,
) -> LadderView:
    results = await fetch_faction_results(client, rows_per_board=rows_per_board, cache=cache)
    return await combined_view_from_results(client, enrichment, results, limit=limit, cache=cache, multi=multi)


def to_ladder_out(view: LadderView) -> LadderOut:
    return LadderOut(
        leaderboard_id=view.leaderboard_id,
        last_updated=view.last_updated,
        stale=False,
        rows=[LadderRowOut.model_validate(r) for r in view.rows],
    )
