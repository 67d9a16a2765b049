import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Player(Base):
    __tablename__ = "players"

    profile_id: Mapped[int] = mapped_column(sa.BigInteger, primary_key=True, autoincrement=False)
    current_alias: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    country: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    steam_id64: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    xp: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    last_seen_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.Index("ix_players_current_alias", "current_alias"),
    )
