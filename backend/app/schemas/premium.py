from datetime import datetime

from pydantic import Field

from app.schemas.base import CamelModel


class CheckoutIn(CamelModel):
    profile_id: int | None = Field(default=None, gt=0)
    success_url: str | None = None
    cancel_url: str | None = None


class RedirectOut(CamelModel):
    url: str


class ActivationStatusOut(CamelModel):
    activated: bool
    forced: bool = False
    reason: str | None = None
    activated_at: datetime | None = None
    expires_at: datetime | None = None


class BadgeStatusOut(CamelModel):
    is_pro_member: bool
    show_badge: bool


class BadgeStatusesIn(CamelModel):
    profile_ids: list[int] = Field(max_length=500)


class BadgeStatusesOut(CamelModel):
    statuses: dict[str, BadgeStatusOut]


class StripeWebhookOut(CamelModel):
    received: bool = True
    event_id: str
    duplicate: bool
    status: str
