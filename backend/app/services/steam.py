from __future__ import annotations

import asyncio

import aiohttp

from app.core.config import settings
from app.core.logger import setup_logger

logger = setup_logger(__name__)

PLAYER_COUNT_PATH = "/ISteamUserStats/GetNumberOfCurrentPlayers/v1/"


def parse_player_count(data: dict | None) -> int | None:
    count = ((data or {}).get("response") or {}).get("player_count")
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        return None
    return count


async def fetch_player_count(
    session: aiohttp.ClientSession,
    *,
    app_id: str = settings.STEAM_APP_ID,
    base_url: str = settings.STEAM_API_BASE_URL,
    timeout_seconds: float = settings.STEAM_TIMEOUT_SECONDS,
) -> int | None:
    """Current concurrent players for ``app_id``; ``None`` when Steam can't say."""
    url = f"{base_url.rstrip('/')}{PLAYER_COUNT_PATH}"
    try:
        async with session.get(
            url,
            params={"appid": app_id},
            timeout=aiohttp.ClientTimeout(total=timeout_seconds),
        ) as resp:
            if resp.status != 200:
                logger.warning("Steam player count returned %s", resp.status)
                return None
            data = await resp.json(content_type=None)
    except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as exc:
        logger.warning("Steam player count failed: %s", exc)
        return None
    return parse_player_count(data)
