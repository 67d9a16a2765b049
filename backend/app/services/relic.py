from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from urllib.parse import urlencode

import aiohttp

from app.core.config import settings
from app.core.logger import setup_logger
from app.services.factions import parse_faction_from_name, parse_match_type_from_name
from app.services.ladder import LadderRow, Leaderboard, PlayerSummary, compute_winrate

logger = setup_logger(__name__)

LEADERBOARD_LIST_PATH = "/community/leaderboard/GetAvailableLeaderboards"
LADDER_PATH = "/community/leaderboard/getLeaderBoard2"
STEAM_PROXY_PATH = "/community/external/proxysteamuserrequest"
PLAYER_SUMMARIES_REQUEST = "/ISteamUser/GetPlayerSummaries/v0002/"
PERSONAL_STAT_PATH = "/community/leaderboard/getPersonalStat"
RECENT_MATCHES_PATH = "/community/leaderboard/getRecentMatchHistory"


class RelicFetchError(RuntimeError):
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Relic request {url} failed: {reason}")


def epoch_to_datetime(value) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_leaderboards(data: dict | None) -> list[Leaderboard]:
    out: list[Leaderboard] = []
    for item in (data or {}).get("leaderboards") or []:
        name = str(item.get("name") or "")
        out.append(
            Leaderboard(
                id=int(item["id"]),
                name=name,
                faction=parse_faction_from_name(name),
                match_type=parse_match_type_from_name(name),
            )
        )
    return out


def _stats_from_items(items: list[dict]) -> list[dict]:
    stats = []
    for it in items:
        statgroup = it.get("statgroup") or {}
        stats.append(
            {
                "statgroup_id": statgroup.get("id") or it.get("statgroup_id"),
                "rank": it.get("rank", it.get("position")),
                "rating": it.get("rating", it.get("elo", it.get("score"))),
                "wins": it.get("wins", it.get("win_count", 0)),
                "losses": it.get("losses", it.get("loss_count", 0)),
                "streak": it.get("streak", 0),
                "lastmatchdate": it.get("lastmatchdate"),
            }
        )
    return stats


def parse_ladder_payload(data: dict | None) -> list[LadderRow]:
    data = data or {}
    groups = data.get("statGroups") or []
    stats = data.get("leaderboardStats")
    if stats is None:
        stats = _stats_from_items(data.get("items") or [])

    groups_by_id = {g.get("id"): g for g in groups}
    rows: list[LadderRow] = []
    for s in stats:
        if not s or not s.get("statgroup_id"):
            continue
        group = groups_by_id.get(s["statgroup_id"]) or {}
        members = group.get("members") or []
        member = members[0] if members else {}
        profile_id = str(member.get("profile_id") or "")
        if not profile_id:
            continue
        wins = int(s.get("wins") or 0)
        losses = int(s.get("losses") or 0)
        rows.append(
            LadderRow(
                rank=int(s.get("rank") or 0),
                profile_id=profile_id,
                player_name=(member.get("alias") or "").strip(),
                rating=int(s.get("rating") or 0),
                wins=wins,
                losses=losses,
                winrate=compute_winrate(wins, losses),
                streak=int(s.get("streak") or 0),
                country=member.get("country"),
                last_match_date=epoch_to_datetime(s.get("lastmatchdate")),
            )
        )
    return rows


def as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def as_list(value) -> list:
    return value if isinstance(value, list) else []


def parse_player_summaries(data) -> dict[str, PlayerSummary]:
    """Map Relic profile ids to Steam persona names.

    The proxy answers 200 with whatever Steam returned, so every level of the
    payload is checked before use; anything unexpected yields no entries.
    """
    response = as_dict(as_dict(as_dict(data).get("steamResults")).get("response"))
    out: dict[str, PlayerSummary] = {}
    for p in as_list(response.get("players")):
        if not isinstance(p, dict):
            continue
        profile_id = p.get("relic_profile_id")
        name = p.get("personaname")
        if profile_id and isinstance(name, str) and name:
            steam_id = p.get("steamid")
            out[str(profile_id)] = PlayerSummary(name=name, steam_id=str(steam_id) if steam_id else None)
    return out


class RelicClient:
    """Thin async wrapper over the Relic community endpoints used by the site.

    Every request carries its own timeout. Nothing is retried: a failed call
    raises ``RelicFetchError`` and the caller decides whether to drop it.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str = settings.RELIC_BASE_URL,
        title: str = settings.RELIC_TITLE,
        timeout_seconds: float = settings.RELIC_TIMEOUT_SECONDS,
        page_size: int = settings.RELIC_PAGE_SIZE,
        page_concurrency: int = settings.RELIC_PAGE_CONCURRENCY,
        page_delay_seconds: float = settings.RELIC_PAGE_DELAY_SECONDS,
        sleep=asyncio.sleep,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.title = title
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.page_size = page_size
        self.page_concurrency = max(1, page_concurrency)
        self.page_delay_seconds = page_delay_seconds
        self._sleep = sleep

    def _url(self, path: str, params: dict) -> str:
        query = urlencode({"title": self.title, **params}, safe="/,")
        return f"{self.base_url}{path}?{query}"

    async def get_json(self, path: str, params: dict) -> dict:
        url = self._url(path, params)
        try:
            async with self.session.get(url, timeout=self.timeout) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise RelicFetchError(url, f"status {resp.status}: {body[:200]}")
                return await resp.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise RelicFetchError(url, "timeout") from exc
        except (aiohttp.ClientError, ValueError) as exc:
            raise RelicFetchError(url, str(exc)) from exc

    async def fetch_leaderboards(self) -> list[Leaderboard]:
        data = await self.get_json(LEADERBOARD_LIST_PATH, {})
        return parse_leaderboards(data)

    async def fetch_ladder_page(self, leaderboard_id: int, start: int, count: int) -> list[LadderRow]:
        data = await self.get_json(
            LADDER_PATH,
            {"leaderboard_id": leaderboard_id, "start": start, "count": count, "sortBy": 1},
        )
        return parse_ladder_payload(data)

    async def fetch_ladder_rows(self, leaderboard_id: int, count: int) -> list[LadderRow]:
        pages = [
            (start, min(self.page_size, count - start + 1))
            for start in range(1, count + 1, self.page_size)
        ]
        rows: list[LadderRow] = []
        failed_pages = 0
        for i in range(0, len(pages), self.page_concurrency):
            wave = pages[i:i + self.page_concurrency]
            results = await asyncio.gather(
                *(self.fetch_ladder_page(leaderboard_id, start, size) for start, size in wave),
                return_exceptions=True,
            )
            for (start, size), result in zip(wave, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, RelicFetchError):
                        raise result
                    failed_pages += 1
                    logger.warning(
                        "Dropping leaderboard %s page start=%s size=%s: %s",
                        leaderboard_id, start, size, result.reason,
                    )
                    continue
                rows.extend(result)
            if i + self.page_concurrency < len(pages):
                await self._sleep(self.page_delay_seconds)

        if pages and failed_pages == len(pages):
            raise RelicFetchError(f"leaderboard:{leaderboard_id}", "every page failed")
        return rows

    async def fetch_player_summaries(self, profile_ids: list[str]) -> dict[str, PlayerSummary]:
        data = await self.get_json(
            STEAM_PROXY_PATH,
            {"request": PLAYER_SUMMARIES_REQUEST, "profile_ids": ",".join(profile_ids)},
        )
        return parse_player_summaries(data)

    async def fetch_personal_stats(self, steam_id: str) -> dict:
        return await self.get_json(PERSONAL_STAT_PATH, {"profile_names": json.dumps([f"/steam/{steam_id}"])})

    async def fetch_recent_matches(self, alias: str, count: int | None = None) -> dict:
        params = {"aliases": json.dumps([alias])}
        if count:
            params["count"] = count
        return await self.get_json(RECENT_MATCHES_PATH, params)


@asynccontextmanager
async def open_relic_client():
    connector = aiohttp.TCPConnector(limit=settings.RELIC_CONNECTOR_LIMIT)
    async with aiohttp.ClientSession(
        connector=connector,
        headers={"User-Agent": "dow-leaderboards/1.0", "Accept": "application/json"},
    ) as session:
        yield RelicClient(session)
