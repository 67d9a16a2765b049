from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_relic_client
from app.core.config import settings
from app.core.logger import setup_logger
from app.core.security import now_utc
from app.db.session import get_db
from app.schemas.leaderboard import LadderOut, LeaderboardListOut, LeaderboardOut
from app.services.aggregation import RequestCache
from app.services.leaderboards import (
    DbEnrichment,
    LadderView,
    build_combined_view,
    build_ladder_view,
    to_ladder_out,
)
from app.services.rank_history import COMBINED_MODE, COMBINED_MULTI_MODE
from app.services.relic import RelicClient, RelicFetchError

router = APIRouter()
logger = setup_logger(__name__)

CACHE_OK = "public, s-maxage=300, stale-while-revalidate=600"
CACHE_DEGRADED = "public, s-maxage=60, stale-while-revalidate=120"
CACHE_BOARD_LIST = "public, s-maxage=3600"


def _ladder_response(view: LadderView, response: Response) -> LadderOut:
    response.headers["Cache-Control"] = CACHE_OK
    if view.diagnostics:
        response.headers["X-Source-Failures"] = str(len(view.diagnostics))
    return to_ladder_out(view)


def degraded_response(leaderboard_id: int | str) -> JSONResponse:
    body = LadderOut(leaderboard_id=leaderboard_id, last_updated=now_utc(), stale=True, rows=[])
    return JSONResponse(
        status_code=502,
        content=body.model_dump(mode="json", by_alias=True),
        headers={"Cache-Control": CACHE_DEGRADED},
    )


@router.get("/leaderboards", response_model=LeaderboardListOut)
async def list_leaderboards(response: Response, client: RelicClient = Depends(get_relic_client)):
    try:
        boards = await client.fetch_leaderboards()
    except RelicFetchError as exc:
        logger.error("Leaderboard list fetch failed: %s", exc)
        body = LeaderboardListOut(items=[], last_updated=now_utc(), error="fetch_failed")
        return JSONResponse(status_code=502, content=body.model_dump(mode="json", by_alias=True))
    response.headers["Cache-Control"] = CACHE_BOARD_LIST
    return LeaderboardListOut(
        items=[LeaderboardOut.model_validate(b) for b in boards],
        last_updated=now_utc(),
    )


@router.get("/leaderboards/{leaderboard_id}", response_model=LadderOut)
async def leaderboard_ladder(
    leaderboard_id: int,
    response: Response,
    limit: int = Query(default=200, ge=1, le=1000),
    client: RelicClient = Depends(get_relic_client),
    db: Session = Depends(get_db),
):
    if leaderboard_id <= 0:
        raise HTTPException(400, "invalid_leaderboard_id")
    try:
        view = await build_ladder_view(client, DbEnrichment(db), leaderboard_id, limit=limit, cache=RequestCache())
    except Exception:
        logger.error("Ladder %s fetch failed", leaderboard_id, exc_info=True)
        return degraded_response(leaderboard_id)
    return _ladder_response(view, response)


async def _combined(response: Response, client: RelicClient, db: Session, *, limit: int, multi: bool):
    mode = COMBINED_MULTI_MODE if multi else COMBINED_MODE
    try:
        view = await build_combined_view(
            client,
            DbEnrichment(db),
            limit=limit,
            rows_per_board=settings.RELIC_ROWS_PER_BOARD,
            cache=RequestCache(),
            multi=multi,
        )
    except Exception:
        logger.error("%s build failed", mode, exc_info=True)
        return degraded_response(mode)
    for failed in view.diagnostics:
        logger.warning("%s served without board %s: %s", mode, failed.source.id, failed.error)
    return _ladder_response(view, response)


@router.get("/combined", response_model=LadderOut)
async def combined_best(
    response: Response,
    limit: int = Query(default=200, ge=1, le=1000),
    client: RelicClient = Depends(get_relic_client),
    db: Session = Depends(get_db),
):
    return await _combined(response, client, db, limit=limit, multi=False)


@router.get("/combined/multi", response_model=LadderOut)
async def combined_multi(
    response: Response,
    limit: int = Query(default=200, ge=1, le=1000),
    client: RelicClient = Depends(get_relic_client),
    db: Session = Depends(get_db),
):
    return await _combined(response, client, db, limit=limit, multi=True)
