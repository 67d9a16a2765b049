from fastapi import APIRouter, Response
import aiohttp

from app.core.config import settings
from app.core.security import now_utc
from app.schemas.steam import SteamPlayerCountOut
from app.services.steam import fetch_player_count

router = APIRouter()

CACHE_PLAYER_COUNT = "public, max-age=86400, s-maxage=86400, stale-while-revalidate=3600"


@router.get("/players", response_model=SteamPlayerCountOut)
async def steam_player_count(response: Response):
    async with aiohttp.ClientSession() as session:
        count = await fetch_player_count(session)
    response.headers["Cache-Control"] = CACHE_PLAYER_COUNT
    return SteamPlayerCountOut(
        app_id=settings.STEAM_APP_ID,
        player_count=count,
        success=count is not None,
        last_updated=now_utc(),
    )
