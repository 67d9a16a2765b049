import asyncio

import pytest

from app.schemas.players import PlayerProfileOut
from app.services.player_profiles import (
    AliasIdentity,
    find_alias_identity,
    lookup_profile,
    parse_personal_stats,
    parse_recent_matches,
    profile_by_alias,
    steam_id_from_profile_name,
)
from app.services.relic import RelicFetchError
from tests.testkit import FakeRelicClient

STEAM_ID = "76561198000001001"

RECENT = {
    "profiles": [
        {"profile_id": 1001, "alias": "Gorgutz", "name": f"/steam/{STEAM_ID}"},
        {"profile_id": 1002, "alias": "Boss", "name": "/steam/76561198000001002"},
    ],
    "matchHistoryStats": [
        {
            "id": 9,
            "mapname": "2p_fata_morgana",
            "matchtype_id": 1,
            "startgametime": 1_700_000_000,
            "completiontime": 1_700_000_900,
            "matchhistorymember": [
                {"profile_id": 1001, "outcome": 1, "oldrating": 1500, "newrating": 1516, "teamid": 0, "race_id": 3},
                {"profile_id": 1002, "outcome": 0, "teamid": 1, "race_id": 0},
            ],
        },
        {"id": 10, "matchhistorymember": [{"profile_id": 1002, "outcome": 1}]},
    ],
}

PERSONAL = {
    "statGroups": [
        {"id": 55, "members": [{"profile_id": 1001, "alias": "Gorgutz", "country": "nz", "level": 12, "xp": 130000}]}
    ],
    "leaderboardStats": [
        {"leaderboard_id": 3, "wins": 30, "losses": 10, "streak": 2, "rating": 1720, "rank": 4, "highestrating": 1800}
    ],
}


def _client(**kwargs):
    return FakeRelicClient([], {}, **kwargs)


def test_steam_id_is_read_from_profile_name():
    assert steam_id_from_profile_name(f"/steam/{STEAM_ID}") == STEAM_ID
    assert steam_id_from_profile_name("/xbox/123") is None
    assert steam_id_from_profile_name(None) is None


def test_alias_identity_is_exact_match():
    assert find_alias_identity(RECENT, " Gorgutz ") == AliasIdentity(profile_id="1001", steam_id=STEAM_ID)
    assert find_alias_identity(RECENT, "gorgutz") is None
    assert find_alias_identity({"profiles": "none"}, "Gorgutz") is None
    assert find_alias_identity(None, "Gorgutz") is None


def test_recent_matches_only_include_the_profile():
    matches = parse_recent_matches(RECENT, "1001")

    assert len(matches) == 1
    match = matches[0]
    assert (match.match_id, match.outcome, match.rating_diff, match.duration_sec) == (9, "Win", 16, 900)
    assert match.race_id == 3
    assert [(p.profile_id, p.alias, p.race_id) for p in match.players] == [("1001", "Gorgutz", 3), ("1002", "Boss", None)]


def test_personal_stats_parsing():
    stats = parse_personal_stats(PERSONAL)

    assert stats.profile.profile_id == "1001"
    assert (stats.profile.level, stats.profile.statgroup_id) == (12, 55)
    board = stats.leaderboard_stats[0]
    assert (board.leaderboard_id, board.rating, board.rank) == (3, 1720, 4)
    assert board.highest_rating == 1800
    assert board.highest_rank is None
    assert parse_personal_stats({"statGroups": "x"}).profile is None


def test_profile_by_alias_combines_stats_and_matches():
    client = _client(personal_stats={STEAM_ID: PERSONAL}, recent_matches={"Gorgutz": RECENT})
    profile = asyncio.run(profile_by_alias(client, "Gorgutz"))

    assert (profile.profile_id, profile.steam_id) == ("1001", STEAM_ID)
    assert profile.personal_stats.profile.country == "nz"
    assert [m.match_id for m in profile.recent_matches] == [9]


def test_profile_by_alias_unknown_alias_is_empty():
    client = _client(recent_matches={"Nobody": {"profiles": []}})
    assert asyncio.run(profile_by_alias(client, "Nobody")) is None


def test_profile_by_alias_propagates_identity_failure():
    client = _client(recent_matches={"Gorgutz": RelicFetchError("history", "timeout")})
    with pytest.raises(RelicFetchError):
        asyncio.run(profile_by_alias(client, "Gorgutz"))


def test_lookup_by_steam_id_uses_alias_from_stats():
    client = _client(personal_stats={STEAM_ID: PERSONAL}, recent_matches={"Gorgutz": RECENT})
    profile = asyncio.run(lookup_profile(client, steam_id=STEAM_ID))

    assert (profile.profile_id, profile.alias) == ("1001", "Gorgutz")
    assert [m.outcome for m in profile.recent_matches] == ["Win"]


def test_lookup_falls_back_to_alias_when_stats_fail():
    client = _client(
        personal_stats={STEAM_ID: RelicFetchError("stats", "status 500")},
        recent_matches={"Gorgutz": RECENT},
    )
    profile = asyncio.run(lookup_profile(client, steam_id=STEAM_ID, alias="Gorgutz"))

    assert profile.profile_id == "1001"
    assert profile.personal_stats is None
    assert len(profile.recent_matches) == 1


def test_lookup_without_any_match_is_none():
    assert asyncio.run(lookup_profile(_client(), profile_id="1001")) is None


def test_profile_wire_shape_is_camel_case():
    client = _client(personal_stats={STEAM_ID: PERSONAL}, recent_matches={"Gorgutz": RECENT})
    profile = asyncio.run(profile_by_alias(client, "Gorgutz"))
    body = PlayerProfileOut.model_validate(profile).model_dump(mode="json", by_alias=True)

    assert body["steamId"] == STEAM_ID
    assert body["personalStats"]["leaderboardStats"][0]["highestRating"] == 1800
    assert body["recentMatches"][0]["ratingDiff"] == 16
    assert body["recentMatches"][0]["players"][1]["profileId"] == "1002"
