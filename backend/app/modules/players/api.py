from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
import sqlalchemy as sa
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_relic_client
from app.core.logger import setup_logger
from app.core.security import now_utc
from app.db.session import get_db
from app.schemas.players import (
    PlayerProfileOut,
    PlayerProfileQueryOut,
    PlayerProfilesOut,
    PlayerSearchOut,
    PlayerSearchResultOut,
)
from app.services.player_profiles import load_known_player, lookup_profile, profile_by_alias
from app.services.premium import parse_profile_id
from app.services.relic import RelicClient, RelicFetchError
from app.services.xp_levels import level_from_xp

router = APIRouter()
logger = setup_logger(__name__)

CACHE_SEARCH = "public, max-age=300, stale-while-revalidate=600"
CACHE_PROFILE = "public, s-maxage=60"
CACHE_BY_ALIAS = "public, s-maxage=300"
CACHE_BY_ALIAS_DEGRADED = "public, s-maxage=60"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def rank_search_results(results: list[PlayerSearchResultOut], query: str) -> list[PlayerSearchResultOut]:
    """Aliases starting with ``query`` first, then alphabetical."""
    needle = query.casefold()
    return sorted(
        results,
        key=lambda r: (not r.current_alias.casefold().startswith(needle), r.current_alias.casefold()),
    )


@router.get("/search", response_model=PlayerSearchOut)
def search_players(
    response: Response,
    q: str = Query(default=""),
    limit: int = Query(default=20, ge=1),
    db: Session = Depends(get_db),
):
    query = q.strip()
    if len(query) < 2:
        raise HTTPException(400, "Query must be at least 2 characters")
    limit = min(limit, 100)

    rows = db.execute(
        sa.text(
            """
            SELECT profile_id, current_alias, country, steam_id64, xp
            FROM players
            WHERE current_alias IS NOT NULL
              AND current_alias ILIKE :pattern ESCAPE '\\'
            ORDER BY current_alias
            LIMIT :limit
            """
        ),
        {"pattern": f"%{_escape_like(query)}%", "limit": limit},
    ).mappings().all()

    results = [
        PlayerSearchResultOut(
            profile_id=r["profile_id"],
            current_alias=r["current_alias"] or "",
            country=r["country"],
            steam_id64=r["steam_id64"],
            level=level_from_xp(r["xp"]),
            xp=r["xp"],
        )
        for r in rows
    ]
    response.headers["Cache-Control"] = CACHE_SEARCH
    return PlayerSearchOut(results=rank_search_results(results, query), query=query, count=len(results))


@router.get("/profile", response_model=PlayerProfilesOut)
async def player_profile(
    response: Response,
    profile_id: str | None = Query(default=None, alias="profileId"),
    steam_id: str | None = Query(default=None, alias="steamId"),
    alias: str | None = Query(default=None),
    client: RelicClient = Depends(get_relic_client),
    db: Session = Depends(get_db),
):
    alias = (alias or "").strip() or None
    if not profile_id and not steam_id and not alias:
        raise HTTPException(400, "profile_id, steam_id, or alias required")

    if profile_id:
        pid = parse_profile_id(profile_id)
        if pid is None:
            raise HTTPException(400, "invalid_profile_id")
        profile_id = str(pid)
        if not steam_id or not alias:
            known = await run_in_threadpool(load_known_player, db, pid)
            if known:
                steam_id = steam_id or known["steam_id64"]
                alias = alias or known["current_alias"]

    profile = await lookup_profile(client, profile_id=profile_id, steam_id=steam_id, alias=alias)
    response.headers["Cache-Control"] = CACHE_PROFILE
    return PlayerProfilesOut(
        results=[PlayerProfileOut.model_validate(profile)] if profile else [],
        query=PlayerProfileQueryOut(profile_id=profile_id, steam_id=steam_id, alias=alias),
        timestamp=now_utc(),
    )


@router.get("/by-alias/{alias}", response_model=PlayerProfilesOut)
async def player_by_alias(alias: str, response: Response, client: RelicClient = Depends(get_relic_client)):
    alias = alias.strip()
    if not alias:
        raise HTTPException(400, "alias_required")
    try:
        profile = await profile_by_alias(client, alias)
    except RelicFetchError as exc:
        logger.error("Alias lookup for %s failed: %s", alias, exc.reason)
        body = PlayerProfilesOut(results=[], timestamp=now_utc())
        return JSONResponse(
            status_code=502,
            content=body.model_dump(mode="json", by_alias=True),
            headers={"Cache-Control": CACHE_BY_ALIAS_DEGRADED},
        )
    response.headers["Cache-Control"] = CACHE_BY_ALIAS
    return PlayerProfilesOut(
        results=[PlayerProfileOut.model_validate(profile)] if profile else [],
        timestamp=now_utc(),
    )
