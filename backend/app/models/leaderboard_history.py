import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class LeaderboardHistory(Base):
    __tablename__ = "leaderboard_history"

    id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=True)
    mode: Mapped[str] = mapped_column(sa.Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
    player_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="0")
    captured_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint("player_count >= 0", name="ck_leaderboard_history_player_count"),
        sa.Index("ix_leaderboard_history_mode_captured", "mode", sa.text("captured_at DESC")),
    )
