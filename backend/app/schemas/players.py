from datetime import datetime

from pydantic import BaseModel

from app.schemas.base import CamelModel


class PlayerSearchResultOut(BaseModel):
    profile_id: int
    current_alias: str
    country: str | None = None
    steam_id64: str | None = None
    level: int
    xp: int | None = None


class PlayerSearchOut(BaseModel):
    results: list[PlayerSearchResultOut]
    query: str
    count: int


class ProfileSummaryOut(CamelModel):
    profile_id: str | None = None
    alias: str | None = None
    country: str | None = None
    level: int | None = None
    xp: int | None = None
    statgroup_id: int | None = None


class BoardStatOut(CamelModel):
    leaderboard_id: int
    wins: int
    losses: int
    streak: int
    rating: int
    rank: int
    last_match_date: datetime | None = None
    highest_rank: int | None = None
    highest_rating: int | None = None
    rank_total: int | None = None
    region_rank: int | None = None
    region_rank_total: int | None = None


class PersonalStatsOut(CamelModel):
    profile: ProfileSummaryOut | None = None
    leaderboard_stats: list[BoardStatOut] = []


class MatchPlayerOut(CamelModel):
    profile_id: str
    alias: str | None = None
    team_id: int | None = None
    race_id: int | None = None


class RecentMatchOut(CamelModel):
    match_id: int
    outcome: str
    map_name: str | None = None
    match_type_id: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_sec: int | None = None
    old_rating: int | None = None
    new_rating: int | None = None
    rating_diff: int | None = None
    team_id: int | None = None
    race_id: int | None = None
    players: list[MatchPlayerOut] = []


class PlayerProfileOut(CamelModel):
    profile_id: str
    alias: str | None = None
    steam_id: str | None = None
    personal_stats: PersonalStatsOut | None = None
    recent_matches: list[RecentMatchOut] = []


class PlayerProfileQueryOut(CamelModel):
    profile_id: str | None = None
    steam_id: str | None = None
    alias: str | None = None


class PlayerProfilesOut(CamelModel):
    results: list[PlayerProfileOut]
    query: PlayerProfileQueryOut | None = None
    timestamp: datetime
