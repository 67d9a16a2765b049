from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Leaderboard:
    id: int
    name: str
    faction: str
    match_type: str


@dataclass(frozen=True)
class PlayerSummary:
    name: str
    steam_id: str | None = None


@dataclass
class LadderRow:
    rank: int
    profile_id: str
    player_name: str
    rating: int
    wins: int
    losses: int
    winrate: float
    streak: int
    country: str | None = None
    last_match_date: datetime | None = None
    steam_id: str | None = None
    faction: str | None = None
    level: int | None = None
    rank_delta: int | None = None


@dataclass
class AggregatedRow(LadderRow):
    original_rank: int = 0
    leaderboard_id: int | None = None


def compute_winrate(wins: int, losses: int) -> float:
    games = wins + losses
    if not games:
        return 0.0
    return round(wins / games * 100, 1)
