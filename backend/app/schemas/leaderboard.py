from datetime import datetime

from app.schemas.base import CamelModel


class LeaderboardOut(CamelModel):
    id: int
    name: str
    faction: str
    match_type: str


class LeaderboardListOut(CamelModel):
    items: list[LeaderboardOut]
    last_updated: datetime
    error: str | None = None


class LadderRowOut(CamelModel):
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
    original_rank: int | None = None
    leaderboard_id: int | None = None
    level: int | None = None
    rank_delta: int | None = None


class LadderOut(CamelModel):
    leaderboard_id: int | str
    last_updated: datetime
    stale: bool
    rows: list[LadderRowOut]
