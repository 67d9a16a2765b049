"""players and leaderboard history

Revision ID: 0001_players_and_history
Revises:
Create Date: 2026-09-14
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_players_and_history"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "players",
        sa.Column("profile_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("current_alias", sa.Text(), nullable=True),
        sa.Column("country", sa.Text(), nullable=True),
        sa.Column("steam_id64", sa.Text(), nullable=True),
        sa.Column("xp", sa.Integer(), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_players_current_alias", "players", ["current_alias"])

    op.create_table(
        "leaderboard_history",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("mode", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("player_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("player_count >= 0", name="ck_leaderboard_history_player_count"),
    )
    op.create_index(
        "ix_leaderboard_history_mode_captured",
        "leaderboard_history",
        ["mode", sa.text("captured_at DESC")],
    )


def downgrade():
    op.drop_index("ix_leaderboard_history_mode_captured", table_name="leaderboard_history")
    op.drop_table("leaderboard_history")

    op.drop_index("ix_players_current_alias", table_name="players")
    op.drop_table("players")
