from datetime import datetime

from pydantic import Field

from app.schemas.base import CamelModel


class LinkedProfileOut(CamelModel):
    profile_id: int
    alias: str | None = None
    country: str | None = None
    level: int | None = None


class SubscriptionOut(CamelModel):
    status: str | None = None
    cancel_at_period_end: bool = False
    current_period_end: datetime | None = None
    active: bool = False


class AccountOut(CamelModel):
    auth0_sub: str
    email: str | None = None
    profile: LinkedProfileOut | None = None
    subscription: SubscriptionOut
    show_badge: bool = True
    has_used_trial: bool = False


class LinkProfileIn(CamelModel):
    profile_id: int = Field(gt=0)


class LinkProfileOut(CamelModel):
    profile: LinkedProfileOut


class BadgeVisibilityIn(CamelModel):
    show_badge: bool


class BadgeVisibilityOut(CamelModel):
    success: bool = True
    show_badge: bool


class SuccessOut(CamelModel):
    success: bool = True
