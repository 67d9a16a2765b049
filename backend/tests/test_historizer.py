import asyncio

import pytest

from app.services.historizer import NoSnapshotsCaptured, capture_snapshots, store_snapshots
from app.services.leaderboards import NoEnrichment
from app.services.relic import RelicFetchError
from tests.testkit import FakeRelicClient, board, make_row

BOARDS = [board(1, "Space Marines"), board(2, "Chaos"), board(3, "Orks", match_type="2v2")]


def _client(overrides: dict | None = None):
    ladders = {
        1: [make_row("100", 1500, 1, name="Alpha")],
        2: [make_row("200", 1600, 1, name="Bravo")],
        3: [make_row("300", 1700, 1, name="Team")],
    }
    ladders.update(overrides or {})
    return FakeRelicClient(BOARDS, ladders)


def test_captures_every_board_and_both_combined_modes():
    result = asyncio.run(capture_snapshots(_client(), NoEnrichment()))

    modes = {s.mode: s for s in result.snapshots}
    assert set(modes) == {"combined-1v1", "combined-1v1-multi", "leaderboard:1", "leaderboard:2", "leaderboard:3"}
    assert result.failed_modes == []
    combined = modes["combined-1v1"]
    assert combined.player_count == 2
    assert [r["profileId"] for r in combined.payload["rows"]] == ["200", "100"]
    assert combined.payload["stale"] is False


def test_failed_board_is_reported_not_fatal():
    result = asyncio.run(capture_snapshots(_client({3: RelicFetchError("x", "timeout")}), NoEnrichment()))

    assert result.failed_modes == ["leaderboard:3"]
    assert len(result.snapshots) == 4


def test_storing_nothing_raises():
    with pytest.raises(NoSnapshotsCaptured):
        store_snapshots(db=None, snapshots=[])


def test_each_board_is_downloaded_once_per_run():
    client = _client()
    asyncio.run(capture_snapshots(client, NoEnrichment()))

    assert sorted(client.ladder_calls) == [1, 2, 3]
    assert client.board_list_calls == 1


def test_failed_faction_board_still_leaves_combined_snapshots():
    client = _client({2: RelicFetchError("x", "timeout")})
    result = asyncio.run(capture_snapshots(client, NoEnrichment()))

    modes = {s.mode: s for s in result.snapshots}
    assert result.failed_modes == ["leaderboard:2"]
    assert set(modes) == {"combined-1v1", "combined-1v1-multi", "leaderboard:1", "leaderboard:3"}
    assert [r["profileId"] for r in modes["combined-1v1"].payload["rows"]] == ["100"]
    assert sorted(client.ladder_calls) == [1, 2, 3]


def test_board_snapshot_is_limited_independently_of_combined():
    client = FakeRelicClient(
        BOARDS,
        {
            1: [make_row(str(i), 2000 - i, i, name=f"p{i}") for i in range(1, 6)],
            2: [make_row("200", 1600, 1, name="Bravo")],
            3: [make_row("300", 1700, 1, name="Team")],
        },
    )
    result = asyncio.run(capture_snapshots(client, NoEnrichment(), board_limit=2, combined_limit=10))

    modes = {s.mode: s for s in result.snapshots}
    assert modes["leaderboard:1"].player_count == 2
    assert modes["combined-1v1"].player_count == 6
