import asyncio
from datetime import datetime, timezone

import pytest

from app.services.factions import parse_faction_from_name, parse_match_type_from_name
from app.services.ladder import PlayerSummary
from app.services.relic import (
    RelicClient,
    RelicFetchError,
    parse_ladder_payload,
    parse_leaderboards,
    parse_player_summaries,
)
from tests.testkit import make_row


@pytest.mark.parametrize(
    "name, faction, match_type",
    [
        ("1v1_space_marine", "Space Marines", "1v1"),
        ("1v1_chaos_marine", "Chaos", "1v1"),
        ("1v1_dark_eldar", "Dark Eldar", "1v1"),
        ("2v2_eldar", "Eldar", "2v2"),
        ("1v1_guard", "Imperial Guard", "1v1"),
        ("4v4_sisters", "Sisters of Battle", "4v4"),
        ("Custom_random", "Unknown", "Custom"),
        ("weird", "Unknown", "Unknown"),
    ],
)
def test_board_name_parsing(name, faction, match_type):
    assert parse_faction_from_name(name) == faction
    assert parse_match_type_from_name(name) == match_type


def test_parse_leaderboards():
    boards = parse_leaderboards({"leaderboards": [{"id": 7, "name": "1v1_ork"}, {"id": "8", "name": "2v2_tau"}]})
    assert [(b.id, b.faction, b.match_type) for b in boards] == [(7, "Orks", "1v1"), (8, "Tau", "2v2")]
    assert parse_leaderboards(None) == []


def test_parse_ladder_joins_stat_groups():
    payload = {
        "statGroups": [
            {"id": 11, "members": [{"profile_id": 1001, "alias": " Gorgutz ", "country": "nz"}]},
            {"id": 12, "members": [{"profile_id": 1002, "alias": ""}]},
            {"id": 13, "members": []},
        ],
        "leaderboardStats": [
            {"statgroup_id": 11, "rank": 1, "rating": 1720, "wins": 30, "losses": 10, "streak": 4, "lastmatchdate": 1_700_000_000},
            {"statgroup_id": 12, "rank": 2, "rating": 1650, "wins": 0, "losses": 0, "streak": -1},
            {"statgroup_id": 13, "rank": 3, "rating": 1600},
            {"rank": 4, "rating": 1500},
        ],
    }
    rows = parse_ladder_payload(payload)

    assert [r.profile_id for r in rows] == ["1001", "1002"]
    first, second = rows
    assert first.player_name == "Gorgutz"
    assert first.country == "nz"
    assert first.winrate == 75.0
    assert first.last_match_date == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert second.player_name == ""
    assert second.winrate == 0.0
    assert second.last_match_date is None


def test_parse_ladder_items_fallback():
    payload = {
        "statGroups": [{"id": 5, "members": [{"profile_id": 9, "alias": "Boss"}]}],
        "items": [{"statgroup": {"id": 5}, "position": 3, "elo": 1400, "win_count": 2, "loss_count": 1}],
    }
    rows = parse_ladder_payload(payload)

    assert len(rows) == 1
    assert (rows[0].rank, rows[0].rating, rows[0].wins, rows[0].losses) == (3, 1400, 2, 1)


def test_parse_player_summaries():
    payload = {
        "steamResults": {
            "response": {
                "players": [
                    {"relic_profile_id": 1, "personaname": "One", "steamid": "76561198000000001"},
                    {"relic_profile_id": 2},
                    {"personaname": "orphan"},
                ]
            }
        }
    }
    assert parse_player_summaries(payload) == {"1": PlayerSummary(name="One", steam_id="76561198000000001")}
    assert parse_player_summaries({}) == {}


class PagedClient(RelicClient):
    def __init__(self, failing_starts=(), **kwargs):
        self.sleeps: list[float] = []

        async def _sleep(seconds):
            self.sleeps.append(seconds)

        super().__init__(session=None, page_size=100, page_concurrency=2, page_delay_seconds=0.1, sleep=_sleep, **kwargs)
        self.failing_starts = set(failing_starts)
        self.requested: list[tuple[int, int]] = []

    async def fetch_ladder_page(self, leaderboard_id, start, count):
        self.requested.append((start, count))
        if start in self.failing_starts:
            raise RelicFetchError("page", "timeout")
        return [make_row(str(start + i), 2000 - start - i, start + i) for i in range(count)]


def test_ladder_pages_run_in_waves():
    client = PagedClient()
    rows = asyncio.run(client.fetch_ladder_rows(1, 250))

    assert client.requested == [(1, 100), (101, 100), (201, 50)]
    assert client.sleeps == [0.1]
    assert len(rows) == 250
    assert [r.rank for r in rows[:3]] == [1, 2, 3]


def test_failed_page_is_dropped():
    client = PagedClient(failing_starts={101})
    rows = asyncio.run(client.fetch_ladder_rows(1, 250))

    assert len(rows) == 150
    assert all(not 101 <= r.rank <= 200 for r in rows)


def test_every_page_failing_raises():
    client = PagedClient(failing_starts={1, 101})
    with pytest.raises(RelicFetchError):
        asyncio.run(client.fetch_ladder_rows(1, 200))
