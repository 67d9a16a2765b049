from fastapi import APIRouter
from app.modules.account import api as account
from app.modules.billing import api as billing
from app.modules.leaderboards import api as leaderboards
from app.modules.players import api as players
from app.modules.premium import api as premium
from app.modules.steam import api as steam

router = APIRouter()
router.include_router(leaderboards.router, prefix="", tags=["leaderboards"])
router.include_router(players.router, prefix="/players", tags=["players"])
router.include_router(steam.router, prefix="/steam", tags=["steam"])
router.include_router(account.router, prefix="/account", tags=["account"])
router.include_router(premium.router, prefix="", tags=["premium"])
router.include_router(billing.router, prefix="/stripe", tags=["billing"])
