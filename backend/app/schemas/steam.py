from datetime import datetime

from app.schemas.base import CamelModel


class SteamPlayerCountOut(CamelModel):
    app_id: str
    player_count: int | None = None
    success: bool
    last_updated: datetime
