"""app users, premium subscriptions and stripe webhook ledger

Revision ID: 0002_accounts_and_premium
Revises: 0001_players_and_history
Create Date: 2026-09-28
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0002_accounts_and_premium"
down_revision = "0001_players_and_history"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "app_users",
        sa.Column("auth0_sub", sa.Text(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=True, unique=True),
        sa.Column("email_verified", sa.Boolean(), nullable=True),
        sa.Column(
            "primary_profile_id",
            sa.BigInteger(),
            sa.ForeignKey("players.profile_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("show_pro_badge", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("has_used_trial", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("stripe_customer_id", sa.Text(), nullable=True),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=True),
        sa.Column("stripe_subscription_status", sa.Text(), nullable=True),
        sa.Column("stripe_subscription_cancel_at_period_end", sa.Boolean(), nullable=True),
        sa.Column("premium_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_app_users_primary_profile_id", "app_users", ["primary_profile_id"])
    op.create_index("ix_app_users_stripe_customer_id", "app_users", ["stripe_customer_id"])

    op.create_table(
        "premium_subscriptions",
        sa.Column(
            "auth0_sub",
            sa.Text(),
            sa.ForeignKey("app_users.auth0_sub", ondelete="CASCADE", onupdate="CASCADE"),
            primary_key=True,
        ),
        sa.Column("stripe_customer_id", sa.Text(), nullable=True),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("price_id", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IS NULL OR status IN ('trialing','active','past_due','canceled','incomplete','incomplete_expired','unpaid','paused')",
            name="ck_premium_subscriptions_status",
        ),
    )

    op.create_table(
        "premium_feature_activations",
        sa.Column("profile_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
    )

    op.create_table(
        "stripe_webhook_events",
        sa.Column("event_id", sa.Text(), primary_key=True),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.Text(), nullable=False, server_default="received"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('received','processed','ignored','error')",
            name="ck_stripe_webhook_events_status",
        ),
    )
    op.create_index(
        "ix_stripe_webhook_events_status_received",
        "stripe_webhook_events",
        ["status", sa.text("received_at DESC")],
    )


def downgrade():
    op.drop_index("ix_stripe_webhook_events_status_received", table_name="stripe_webhook_events")
    op.drop_table("stripe_webhook_events")

    op.drop_table("premium_feature_activations")
    op.drop_table("premium_subscriptions")

    op.drop_index("ix_app_users_stripe_customer_id", table_name="app_users")
    op.drop_index("ix_app_users_primary_profile_id", table_name="app_users")
    op.drop_table("app_users")
