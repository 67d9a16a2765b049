from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from app.core.logger import setup_logger
from app.services.aggregation import RequestCache
from app.services.ladder import LadderRow, PlayerSummary
from app.services.relic import RelicFetchError

logger = setup_logger(__name__)

UNKNOWN_PLAYER_NAME = "Unknown"

FetchBatch = Callable[[list[str]], Awaitable[dict[str, PlayerSummary]]]


async def resolve_names(
    fetch_batch: FetchBatch,
    profile_ids: list[str],
    *,
    batch_size: int = 25,
    delay_seconds: float = 0.12,
    sleep=asyncio.sleep,
    cache: RequestCache | None = None,
) -> dict[str, PlayerSummary]:
    known = cache.names if cache is not None else {}
    unique = [pid for pid in dict.fromkeys(profile_ids) if pid and pid not in known]
    out = {pid: known[pid] for pid in dict.fromkeys(profile_ids) if pid in known}

    batches = [unique[i:i + batch_size] for i in range(0, len(unique), batch_size)]
    for index, batch in enumerate(batches):
        if index > 0:
            await sleep(delay_seconds)
        try:
            resolved = await fetch_batch(batch)
        except RelicFetchError as exc:
            logger.warning("Name lookup failed for %d profiles: %s", len(batch), exc.reason)
            continue
        out.update(resolved)
        if cache is not None:
            cache.names.update(resolved)
    return out


def fill_missing_names(rows: list[LadderRow], names: dict[str, PlayerSummary]) -> None:
    for row in rows:
        resolved = names.get(row.profile_id)
        if not row.player_name:
            row.player_name = resolved.name if resolved else UNKNOWN_PLAYER_NAME
        if not row.steam_id and resolved and resolved.steam_id:
            row.steam_id = resolved.steam_id
