from __future__ import annotations

import pytest

from tests.testkit import ApiError


def test_health(api):
    assert api.call("GET", "/health") == {"ok": True}


def test_leaderboard_list(api):
    out = api.call("GET", "/leaderboards")
    assert isinstance(out["items"], list)
    assert "lastUpdated" in out


def test_combined_envelope(api):
    try:
        out = api.call("GET", "/combined?limit=25")
    except ApiError as exc:
        # Upstream fully down: degraded envelope.
        assert exc.status_code == 502
        out = exc.payload
        assert out["stale"] is True
        assert out["rows"] == []
        return

    assert out["leaderboardId"] == "combined-1v1"
    assert out["stale"] is False
    rows = out["rows"]
    assert len(rows) <= 25
    assert [r["rank"] for r in rows] == list(range(1, len(rows) + 1))
    assert len({r["profileId"] for r in rows}) == len(rows)


def test_invalid_leaderboard_id(api):
    with pytest.raises(ApiError) as exc:
        api.call("GET", "/leaderboards/0")
    assert exc.value.status_code == 400


def test_player_search_requires_two_characters(api):
    with pytest.raises(ApiError) as exc:
        api.call("GET", "/players/search?q=a")
    assert exc.value.status_code == 400


def test_account_requires_token(api):
    with pytest.raises(ApiError) as exc:
        api.call("GET", "/account")
    assert exc.value.status_code in (401, 403)
