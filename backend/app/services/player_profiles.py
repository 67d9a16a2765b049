"""Player profile lookups against Relic's personal-stat and match-history endpoints.

A profile is identified by Steam id when one is known, since
``getPersonalStat`` only accepts ``/steam/<id>`` profile names. Aliases are
resolved to a profile id (and, where the payload carries it, a Steam id)
through ``getRecentMatchHistory``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import re

import sqlalchemy as sa
from sqlalchemy.orm import Session

from app.core.logger import setup_logger
from app.services.relic import RelicClient, RelicFetchError, as_dict, as_list, epoch_to_datetime
from app.services.xp_levels import level_from_xp

logger = setup_logger(__name__)

RECENT_MATCH_COUNT = 10

_STEAM_PROFILE_NAME = re.compile(r"/steam/(\d{17})")


@dataclass(frozen=True)
class AliasIdentity:
    profile_id: str
    steam_id: str | None = None


@dataclass(frozen=True)
class ProfileSummary:
    profile_id: str | None = None
    alias: str | None = None
    country: str | None = None
    level: int | None = None
    xp: int | None = None
    statgroup_id: int | None = None


@dataclass(frozen=True)
class BoardStat:
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


@dataclass(frozen=True)
class PersonalStats:
    profile: ProfileSummary | None
    leaderboard_stats: list[BoardStat]


@dataclass(frozen=True)
class MatchPlayer:
    profile_id: str
    alias: str | None = None
    team_id: int | None = None
    race_id: int | None = None


@dataclass(frozen=True)
class RecentMatch:
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
    players: list[MatchPlayer] = field(default_factory=list)


@dataclass
class PlayerProfile:
    profile_id: str
    alias: str | None = None
    steam_id: str | None = None
    personal_stats: PersonalStats | None = None
    recent_matches: list[RecentMatch] = field(default_factory=list)


def steam_id_from_profile_name(name) -> str | None:
    if not isinstance(name, str):
        return None
    match = _STEAM_PROFILE_NAME.search(name)
    return match.group(1) if match else None


def _int_or_none(value) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number or None


def _int_or(value, default: int) -> int:
    number = _int_or_none(value)
    return default if number is None else number


def _positive(value) -> int | None:
    number = _int_or_none(value)
    return number if number and number > 0 else None


def _match_members(data) -> list[dict]:
    """Every object in the payload's top-level arrays that names a profile."""
    out = []
    for value in as_dict(data).values():
        for item in as_list(value):
            if isinstance(item, dict) and "profile_id" in item:
                out.append(item)
    return out


def find_alias_identity(data, alias: str) -> AliasIdentity | None:
    wanted = alias.strip()
    members = _match_members(data)
    steam_names = {
        str(m["profile_id"]): m.get("name")
        for m in members
        if "name" in m
    }
    for member in members:
        if "alias" not in member or str(member.get("alias") or "").strip() != wanted:
            continue
        profile_id = str(member.get("profile_id") or "")
        if not profile_id:
            continue
        steam_name = member.get("name") or steam_names.get(profile_id)
        return AliasIdentity(profile_id=profile_id, steam_id=steam_id_from_profile_name(steam_name))
    return None


def parse_personal_stats(data) -> PersonalStats:
    data = as_dict(data)
    groups = as_list(data.get("statGroups"))
    group = as_dict(groups[0]) if groups else {}
    members = as_list(group.get("members"))
    member = as_dict(members[0]) if members else {}

    profile = None
    if member:
        profile = ProfileSummary(
            profile_id=str(member["profile_id"]) if member.get("profile_id") else None,
            alias=member.get("alias"),
            country=member.get("country"),
            level=_int_or_none(member.get("level")),
            xp=_int_or_none(member.get("xp")),
            statgroup_id=_int_or_none(group.get("id") or member.get("personal_statgroup_id")),
        )

    stats = []
    for s in as_list(data.get("leaderboardStats")):
        if not isinstance(s, dict):
            continue
        stats.append(
            BoardStat(
                leaderboard_id=_int_or(s.get("leaderboard_id"), 0),
                wins=_int_or(s.get("wins"), 0),
                losses=_int_or(s.get("losses"), 0),
                streak=_int_or(s.get("streak"), 0),
                rating=_int_or(s.get("rating"), 0),
                rank=_int_or(s.get("rank"), -1),
                last_match_date=epoch_to_datetime(s.get("lastmatchdate")),
                highest_rank=_int_or_none(s.get("highestrank")),
                highest_rating=_int_or_none(s.get("highestrating")),
                rank_total=_int_or_none(s.get("ranktotal")),
                region_rank=_int_or_none(s.get("regionrank")),
                region_rank_total=_int_or_none(s.get("regionranktotal")),
            )
        )
    return PersonalStats(profile=profile, leaderboard_stats=stats)


def _outcome(value) -> str:
    if value == 1:
        return "Win"
    if value == 0:
        return "Loss"
    return "Unknown"


def parse_recent_matches(data, profile_id: str, limit: int = RECENT_MATCH_COUNT) -> list[RecentMatch]:
    aliases = {
        str(m["profile_id"]): m.get("alias")
        for m in _match_members(data)
        if "alias" in m
    }
    matches = []
    for m in as_list(as_dict(data).get("matchHistoryStats")):
        if not isinstance(m, dict):
            continue
        members = [p for p in as_list(m.get("matchhistorymember")) if isinstance(p, dict)]
        me = next((p for p in members if str(p.get("profile_id") or "") == profile_id), None)
        if me is None:
            continue
        old_rating = me.get("oldrating") if isinstance(me.get("oldrating"), int) else None
        new_rating = me.get("newrating") if isinstance(me.get("newrating"), int) else None
        start = m.get("startgametime") if isinstance(m.get("startgametime"), int) else None
        end = m.get("completiontime") if isinstance(m.get("completiontime"), int) else None
        matches.append(
            RecentMatch(
                match_id=_int_or(m.get("id"), 0),
                outcome=_outcome(me.get("outcome")),
                map_name=m.get("mapname"),
                match_type_id=m.get("matchtype_id") if isinstance(m.get("matchtype_id"), int) else None,
                start_time=epoch_to_datetime(start),
                end_time=epoch_to_datetime(end),
                duration_sec=end - start if start is not None and end is not None else None,
                old_rating=old_rating,
                new_rating=new_rating,
                rating_diff=new_rating - old_rating if old_rating is not None and new_rating is not None else None,
                team_id=me.get("teamid") if isinstance(me.get("teamid"), int) else None,
                race_id=_positive(me.get("race_id")),
                players=[
                    MatchPlayer(
                        profile_id=str(p.get("profile_id") or ""),
                        alias=aliases.get(str(p.get("profile_id") or "")),
                        team_id=p.get("teamid") if isinstance(p.get("teamid"), int) else None,
                        race_id=_positive(p.get("race_id")),
                    )
                    for p in members
                ],
            )
        )
        if len(matches) >= limit:
            break
    return matches


def load_known_player(db: Session, profile_id: int):
    row = db.execute(
        sa.text("SELECT profile_id, current_alias, country, steam_id64, xp FROM players WHERE profile_id=:pid"),
        {"pid": profile_id},
    ).mappings().first()
    if not row:
        return None
    return {**row, "level": level_from_xp(row["xp"])}


async def _personal_stats(client: RelicClient, steam_id: str) -> PersonalStats | None:
    try:
        return parse_personal_stats(await client.fetch_personal_stats(steam_id))
    except RelicFetchError as exc:
        logger.warning("Personal stats for steam id %s unavailable: %s", steam_id, exc.reason)
        return None


async def _recent_matches(client: RelicClient, alias: str, profile_id: str) -> list[RecentMatch]:
    try:
        data = await client.fetch_recent_matches(alias, RECENT_MATCH_COUNT)
    except RelicFetchError as exc:
        logger.warning("Recent matches for %s unavailable: %s", alias, exc.reason)
        return []
    return parse_recent_matches(data, profile_id)


async def profile_by_alias(client: RelicClient, alias: str) -> PlayerProfile | None:
    """Exact-alias lookup. A failed identity lookup propagates ``RelicFetchError``."""
    identity = find_alias_identity(await client.fetch_recent_matches(alias), alias)
    if identity is None:
        return None
    profile = PlayerProfile(profile_id=identity.profile_id, alias=alias, steam_id=identity.steam_id)
    if identity.steam_id:
        profile.personal_stats = await _personal_stats(client, identity.steam_id)
    profile.recent_matches = await _recent_matches(client, alias, identity.profile_id)
    return profile


async def lookup_profile(
    client: RelicClient,
    *,
    profile_id: str | None = None,
    steam_id: str | None = None,
    alias: str | None = None,
) -> PlayerProfile | None:
    """Best-effort profile: Steam id first, then alias; upstream failures only drop detail."""
    profile = None
    if steam_id:
        stats = await _personal_stats(client, steam_id)
        if stats is not None and stats.profile is not None:
            member_alias = stats.profile.alias or alias
            profile = PlayerProfile(
                profile_id=stats.profile.profile_id or profile_id or "",
                alias=member_alias,
                steam_id=steam_id,
                personal_stats=stats,
            )
            alias = alias or member_alias

    if profile is None and alias:
        try:
            data = await client.fetch_recent_matches(alias)
        except RelicFetchError as exc:
            logger.warning("Alias lookup for %s failed: %s", alias, exc.reason)
            data = {}
        identity = None
        if profile_id:
            identity = next(
                (
                    AliasIdentity(profile_id=profile_id, steam_id=steam_id_from_profile_name(m.get("name")))
                    for m in _match_members(data)
                    if str(m.get("profile_id")) == profile_id and "alias" in m
                ),
                None,
            )
        identity = identity or find_alias_identity(data, alias)
        if identity is not None:
            profile = PlayerProfile(profile_id=identity.profile_id, alias=alias, steam_id=identity.steam_id)

    if profile is None:
        return None
    if profile.alias and profile.profile_id:
        profile.recent_matches = await _recent_matches(client, profile.alias, profile.profile_id)
    return profile
