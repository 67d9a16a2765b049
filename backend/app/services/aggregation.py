"""Cross-faction aggregation of per-board ladders.

Each per-faction board is fetched independently; the outcome of every fetch
is captured as a ``FetchOk`` or ``FetchFailed`` value so that a failing board
only removes its own contribution. Only ``FetchOk`` rows are ever aggregated.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Union

from app.services.ladder import AggregatedRow, LadderRow, Leaderboard, PlayerSummary


@dataclass(frozen=True)
class FetchOk:
    source: Leaderboard
    rows: list[LadderRow]


@dataclass(frozen=True)
class FetchFailed:
    source: Leaderboard
    error: str


FetchResult = Union[FetchOk, FetchFailed]


@dataclass
class RequestCache:
    """Memo shared by the steps of a single request. Never stored globally."""

    leaderboards: list[Leaderboard] | None = None
    names: dict[str, PlayerSummary] = field(default_factory=dict)
    levels: dict[str, int | None] = field(default_factory=dict)


def tag_rows(board: Leaderboard, rows: list[LadderRow]) -> list[AggregatedRow]:
    tagged = []
    for row in rows:
        values = {f.name: getattr(row, f.name) for f in fields(LadderRow)}
        values["faction"] = board.faction
        tagged.append(AggregatedRow(**values, original_rank=row.rank, leaderboard_id=board.id))
    return tagged


def _concatenate(results: list[FetchResult]) -> list[AggregatedRow]:
    out: list[AggregatedRow] = []
    for result in results:
        if isinstance(result, FetchOk):
            out.extend(tag_rows(result.source, result.rows))
    return out


def _rerank(rows: list[AggregatedRow]) -> list[AggregatedRow]:
    # sorted() is stable: equal ratings keep concatenation order.
    ranked = sorted(rows, key=lambda r: r.rating, reverse=True)
    for index, row in enumerate(ranked):
        row.rank = index + 1
    return ranked


def aggregate_best(results: list[FetchResult]) -> list[AggregatedRow]:
    best: dict[str, AggregatedRow] = {}
    for row in _concatenate(results):
        existing = best.get(row.profile_id)
        if existing is None or row.rating > existing.rating:
            best[row.profile_id] = row
    return _rerank(list(best.values()))


def rank_all_entries(results: list[FetchResult]) -> list[AggregatedRow]:
    return _rerank(_concatenate(results))


def failures(results: list[FetchResult]) -> list[FetchFailed]:
    return [r for r in results if isinstance(r, FetchFailed)]
