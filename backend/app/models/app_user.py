import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class AppUser(Base):
    __tablename__ = "app_users"

    auth0_sub: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    email: Mapped[str | None] = mapped_column(sa.Text, nullable=True, unique=True)
    email_verified: Mapped[bool | None] = mapped_column(sa.Boolean, nullable=True)
    primary_profile_id: Mapped[int | None] = mapped_column(
        sa.BigInteger, sa.ForeignKey("players.profile_id", ondelete="SET NULL"), nullable=True
    )
    show_pro_badge: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("true"))
    has_used_trial: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("false"))
    stripe_customer_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    stripe_subscription_status: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    stripe_subscription_cancel_at_period_end: Mapped[bool | None] = mapped_column(sa.Boolean, nullable=True)
    premium_expires_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.Index("ix_app_users_primary_profile_id", "primary_profile_id"),
        sa.Index("ix_app_users_stripe_customer_id", "stripe_customer_id"),
    )
