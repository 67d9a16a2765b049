from __future__ import annotations

import json
from dataclasses import replace
from urllib import error, request

from app.services.ladder import LadderRow, Leaderboard, PlayerSummary, compute_winrate
from app.services.relic import RelicFetchError


class ApiError(RuntimeError):
    def __init__(self, status_code: int, payload):
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"HTTP {status_code}: {payload}")


class ApiClient:
    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def call(self, method: str, path: str, *, token: str | None = None, body=None, timeout: int = 60):
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        payload = None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if body is not None:
            headers["Content-Type"] = "application/json"
            payload = json.dumps(body).encode("utf-8")

        req = request.Request(url=url, data=payload, headers=headers, method=method.upper())
        try:
            with request.urlopen(req, timeout=timeout) as resp:
                raw = resp.read().decode("utf-8")
                return _parse_payload(raw)
        except error.HTTPError as exc:
            raw = exc.read().decode("utf-8")
            raise ApiError(exc.code, _parse_payload(raw)) from exc


def _parse_payload(raw: str):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def make_row(profile_id: str, rating: int, rank: int = 1, *, name: str = "", wins: int = 10, losses: int = 5) -> LadderRow:
    return LadderRow(
        rank=rank,
        profile_id=profile_id,
        player_name=name,
        rating=rating,
        wins=wins,
        losses=losses,
        winrate=compute_winrate(wins, losses),
        streak=0,
    )


def board(board_id: int, faction: str, match_type: str = "1v1") -> Leaderboard:
    return Leaderboard(id=board_id, name=f"{match_type}_{faction}", faction=faction, match_type=match_type)


class FakeRelicClient:
    """In-memory stand-in for ``RelicClient``; a board mapped to an exception fails."""

    def __init__(
        self,
        boards: list[Leaderboard],
        ladders: dict,
        names: dict[str, str] | None = None,
        *,
        steam_ids: dict[str, str] | None = None,
        personal_stats: dict | None = None,
        recent_matches: dict | None = None,
    ):
        self.boards = boards
        self.ladders = ladders
        self.names = names or {}
        self.steam_ids = steam_ids or {}
        self.personal_stats = personal_stats or {}
        self.recent_matches = recent_matches or {}
        self.board_list_calls = 0
        self.ladder_calls: list[int] = []
        self.name_batches: list[list[str]] = []

    async def fetch_leaderboards(self):
        self.board_list_calls += 1
        if isinstance(self.boards, Exception):
            raise self.boards
        return list(self.boards)

    async def fetch_ladder_rows(self, leaderboard_id: int, count: int):
        self.ladder_calls.append(leaderboard_id)
        outcome = self.ladders.get(leaderboard_id)
        if outcome is None:
            raise RelicFetchError(f"leaderboard:{leaderboard_id}", "status 404")
        if isinstance(outcome, Exception):
            raise outcome
        return [replace(r) for r in outcome[:count]]

    async def fetch_player_summaries(self, profile_ids: list[str]):
        self.name_batches.append(list(profile_ids))
        return {
            pid: PlayerSummary(name=self.names[pid], steam_id=self.steam_ids.get(pid))
            for pid in profile_ids
            if pid in self.names
        }

    async def fetch_personal_stats(self, steam_id: str):
        return _canned(self.personal_stats.get(steam_id))

    async def fetch_recent_matches(self, alias: str, count: int | None = None):
        return _canned(self.recent_matches.get(alias))


class FakeEnrichment:
    def __init__(self, levels: dict[str, int] | None = None, snapshots: dict[str, list[dict]] | None = None):
        self._levels = levels or {}
        self._snapshots = snapshots or {}
        self.level_requests: list[list[str]] = []

    async def levels(self, profile_ids: list[str]) -> dict[str, int]:
        self.level_requests.append(list(profile_ids))
        return {pid: self._levels[pid] for pid in profile_ids if pid in self._levels}

    async def snapshots(self, mode: str) -> list[dict]:
        return self._snapshots.get(mode, [])


def _canned(outcome):
    if isinstance(outcome, Exception):
        raise outcome
    return outcome or {}
