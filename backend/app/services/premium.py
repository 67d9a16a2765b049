from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import json
from urllib import parse as urlparse

import sqlalchemy as sa
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logger import setup_logger
from app.core.security import Identity, now_utc
from app.services import billing_provider
from app.services.app_users import get_app_user, upsert_app_user
from app.services.billing_provider import CheckoutSessionRequest, SubscriptionState

logger = setup_logger(__name__)

ACTIVE_STATUSES = {"active", "trialing", "past_due"}

SUBSCRIPTION_EVENTS = {
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.trial_will_end",
}
CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass(frozen=True)
class BadgeStatus:
    is_pro_member: bool
    show_badge: bool


@dataclass(frozen=True)
class ActivationStatus:
    activated: bool
    forced: bool
    reason: str
    activated_at: datetime | None = None
    expires_at: datetime | None = None


def parse_profile_id(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if parsed > 0 else None
    return None


def is_subscription_active(status: str | None, current_period_end: datetime | None, now: datetime | None = None) -> bool:
    if (status or "") not in ACTIVE_STATUSES:
        return False
    if current_period_end is None:
        return True
    return current_period_end > (now or now_utc())


def _badge_from(subscription, show_pro_badge: bool | None, now: datetime) -> BadgeStatus:
    if not subscription or subscription["current_period_end"] is None:
        return BadgeStatus(False, False)
    is_pro = is_subscription_active(subscription["status"], subscription["current_period_end"], now)
    show = is_pro and (True if show_pro_badge is None else bool(show_pro_badge))
    return BadgeStatus(is_pro, show)


def pro_badge_statuses(db: Session, profile_ids: list[int], now: datetime | None = None) -> dict[int, BadgeStatus]:
    now = now or now_utc()
    out = {pid: BadgeStatus(False, False) for pid in profile_ids}
    if not profile_ids:
        return out
    rows = db.execute(
        sa.text(
            """
            SELECT
                u.primary_profile_id,
                u.show_pro_badge,
                s.status,
                s.current_period_end
            FROM app_users u
            LEFT JOIN premium_subscriptions s ON s.auth0_sub = u.auth0_sub
            WHERE u.primary_profile_id = ANY(:ids)
            """
        ),
        {"ids": list(profile_ids)},
    ).mappings().all()
    for r in rows:
        subscription = r if r["status"] is not None else None
        out[int(r["primary_profile_id"])] = _badge_from(subscription, r["show_pro_badge"], now)
    return out


def pro_badge_status(db: Session, profile_id: int, now: datetime | None = None) -> BadgeStatus:
    return pro_badge_statuses(db, [profile_id], now)[profile_id]


def forced_profiles() -> set[str]:
    raw = settings.FORCE_ADVANCED_STATS_PROFILES or ""
    return {token.strip() for token in raw.split(",") if token.strip()}


def is_env_forced_profile(profile_id: str | None) -> bool:
    if not profile_id:
        return False
    if settings.FORCE_ADVANCED_STATS:
        return True
    return profile_id in forced_profiles()


def activation_status(db: Session, profile_id: int, now: datetime | None = None) -> ActivationStatus:
    if is_env_forced_profile(str(profile_id)):
        return ActivationStatus(activated=True, forced=True, reason="env_override")

    row = db.execute(
        sa.text(
            """
            SELECT activated_at, expires_at
            FROM premium_feature_activations
            WHERE profile_id=:pid
            """
        ),
        {"pid": profile_id},
    ).mappings().first()
    if not row:
        return ActivationStatus(activated=False, forced=False, reason="not_found")
    if row["expires_at"] is not None and row["expires_at"] < (now or now_utc()):
        return ActivationStatus(activated=False, forced=False, reason="expired", expires_at=row["expires_at"])
    return ActivationStatus(
        activated=True,
        forced=False,
        reason="database",
        activated_at=row["activated_at"],
        expires_at=row["expires_at"],
    )


def site_base_url() -> str:
    parsed = urlparse.urlsplit(settings.SITE_BASE_URL or "")
    if not parsed.scheme or not parsed.netloc:
        return "http://localhost:3000/"
    path = parsed.path if parsed.path.endswith("/") else f"{parsed.path}/"
    return f"{parsed.scheme}://{parsed.netloc}{path}"


def safe_return_url(value: str | None, base_url: str, *, allow_session_placeholder: bool = False) -> str | None:
    """Accept ``value`` only when it points at the site's own origin."""
    if not value:
        return None
    target = urlparse.urlsplit(value)
    base = urlparse.urlsplit(base_url)
    if (target.scheme, target.netloc) != (base.scheme, base.netloc):
        return None
    if allow_session_placeholder:
        return value
    query = [(k, v) for k, v in urlparse.parse_qsl(target.query, keep_blank_values=True) if k != "session_id"]
    return urlparse.urlunsplit(target._replace(query=urlparse.urlencode(query)))


def start_checkout(
    db: Session,
    identity: Identity,
    *,
    requested_profile_id: int | None,
    success_url: str | None,
    cancel_url: str | None,
) -> str:
    if not settings.STRIPE_PRICE_ID:
        raise NotImplementedError("stripe_price_unconfigured")

    app_user = get_app_user(db, identity.sub)
    if app_user and app_user["has_used_trial"]:
        raise ValueError("trial_already_used")

    profile_id = requested_profile_id or (parse_profile_id(app_user["primary_profile_id"]) if app_user else None)
    if not profile_id:
        raise ValueError("profile_required")

    metadata = {"profile_id": str(profile_id), "auth0_sub": identity.sub}
    customer_id = app_user["stripe_customer_id"] if app_user else None
    if customer_id and not billing_provider.customer_exists(customer_id):
        logger.warning("Stripe customer %s no longer exists, creating a new one", customer_id)
        customer_id = None

    if customer_id:
        try:
            billing_provider.update_customer(customer_id, email=identity.email, metadata=metadata)
        except billing_provider.BillingProviderError as exc:
            logger.warning("Customer metadata update failed for %s: %s", customer_id, exc.reason)
    else:
        customer_id = billing_provider.create_customer(email=identity.email, metadata=metadata)

    base_url = site_base_url()
    session = billing_provider.create_checkout_session(
        CheckoutSessionRequest(
            customer_id=customer_id,
            price_id=settings.STRIPE_PRICE_ID,
            profile_id=profile_id,
            auth0_sub=identity.sub,
            success_url=(
                safe_return_url(success_url, base_url, allow_session_placeholder=True)
                or f"{base_url}account?checkout=success&session_id={{CHECKOUT_SESSION_ID}}"
            ),
            cancel_url=safe_return_url(cancel_url, base_url) or f"{base_url}account?checkout=cancelled",
            trial_days=settings.STRIPE_TRIAL_DAYS,
        )
    )
    if not session.checkout_url:
        raise billing_provider.BillingProviderError("checkout.sessions.create", "checkout_missing_url")

    upsert_app_user(
        db,
        identity,
        {
            "primary_profile_id": profile_id,
            "stripe_customer_id": customer_id,
            "stripe_subscription_id": None,
            "stripe_subscription_status": None,
            "stripe_subscription_cancel_at_period_end": None,
            "premium_expires_at": None,
        },
    )
    return session.checkout_url


def open_portal(db: Session, auth0_sub: str) -> str:
    app_user = get_app_user(db, auth0_sub)
    customer_id = app_user["stripe_customer_id"] if app_user else None
    if not customer_id:
        raise ValueError("no_customer")
    return billing_provider.create_portal_session(customer_id=customer_id, return_url=f"{site_base_url()}account")


def _resolve_app_user(db: Session, state: SubscriptionState) -> str | None:
    metadata = state.metadata
    auth0_sub = metadata.get("auth0_sub") or metadata.get("auth0Sub")
    profile_id = parse_profile_id(metadata.get("profile_id") or metadata.get("profileId"))

    lookups = []
    if auth0_sub:
        lookups.append(("auth0_sub", auth0_sub))
    if state.customer_id:
        lookups.append(("stripe_customer_id", state.customer_id))
    if profile_id:
        lookups.append(("primary_profile_id", profile_id))

    for column, value in lookups:
        row = db.execute(
            sa.text(f"SELECT auth0_sub FROM app_users WHERE {column}=:value LIMIT 1"),
            {"value": value},
        ).first()
        if row:
            return row[0]
    return None


def apply_subscription(db: Session, state: SubscriptionState) -> str | None:
    """Mirror a Stripe subscription onto ``app_users`` and ``premium_subscriptions``.

    Returns the matched ``auth0_sub``, or ``None`` when no app user owns it.
    Profile linkage is never changed here.
    """
    auth0_sub = _resolve_app_user(db, state)
    if not auth0_sub:
        logger.warning(
            "Subscription %s (customer %s) has no matching app user",
            state.subscription_id,
            state.customer_id,
        )
        return None

    db.execute(
        sa.text(
            """
            UPDATE app_users
            SET stripe_customer_id=:customer_id,
                stripe_subscription_id=:subscription_id,
                stripe_subscription_status=:status,
                stripe_subscription_cancel_at_period_end=:cancel_at_period_end,
                premium_expires_at=:period_end,
                has_used_trial=(has_used_trial OR :trialing),
                updated_at=now()
            WHERE auth0_sub=:sub
            """
        ),
        {
            "sub": auth0_sub,
            "customer_id": state.customer_id,
            "subscription_id": state.subscription_id,
            "status": state.status,
            "cancel_at_period_end": state.cancel_at_period_end,
            "period_end": state.current_period_end,
            "trialing": state.status == "trialing",
        },
    )
    db.execute(
        sa.text(
            """
            INSERT INTO premium_subscriptions (
                auth0_sub, stripe_customer_id, stripe_subscription_id, status,
                cancel_at_period_end, current_period_start, current_period_end, price_id
            )
            VALUES (
                :sub, :customer_id, :subscription_id, :status,
                :cancel_at_period_end, :period_start, :period_end, :price_id
            )
            ON CONFLICT (auth0_sub) DO UPDATE
            SET stripe_customer_id=EXCLUDED.stripe_customer_id,
                stripe_subscription_id=EXCLUDED.stripe_subscription_id,
                status=EXCLUDED.status,
                cancel_at_period_end=EXCLUDED.cancel_at_period_end,
                current_period_start=EXCLUDED.current_period_start,
                current_period_end=EXCLUDED.current_period_end,
                price_id=EXCLUDED.price_id,
                updated_at=now()
            """
        ),
        {
            "sub": auth0_sub,
            "customer_id": state.customer_id,
            "subscription_id": state.subscription_id,
            "status": state.status,
            "cancel_at_period_end": state.cancel_at_period_end,
            "period_start": state.current_period_start or now_utc(),
            "period_end": state.current_period_end,
            "price_id": state.price_id,
        },
    )
    return auth0_sub


def subscription_for_event(event: dict, retrieve=billing_provider.retrieve_subscription) -> SubscriptionState | None:
    event_type = str(event.get("type") or "")
    obj = ((event.get("data") or {}).get("object")) or {}
    if event_type in SUBSCRIPTION_EVENTS:
        return billing_provider.parse_subscription(obj)
    if event_type == CHECKOUT_COMPLETED:
        subscription = obj.get("subscription")
        if isinstance(subscription, str) and subscription:
            return retrieve(subscription)
        if isinstance(subscription, dict):
            return billing_provider.parse_subscription(subscription)
    return None


def ingest_stripe_event(db: Session, event: dict, retrieve=billing_provider.retrieve_subscription) -> dict:
    event_id = str(event.get("id") or "").strip()
    event_type = str(event.get("type") or "").strip()
    if not event_id or not event_type:
        raise ValueError("invalid_event")

    # A previously failed event may be replayed by Stripe; anything else is a duplicate.
    inserted = db.execute(
        sa.text(
            """
            INSERT INTO stripe_webhook_events (event_id, event_type, payload, status)
            VALUES (:event_id, :event_type, CAST(:payload AS jsonb), 'received')
            ON CONFLICT (event_id) DO UPDATE
            SET status='received', error_message=NULL, received_at=now()
            WHERE stripe_webhook_events.status='error'
            RETURNING event_id
            """
        ),
        {"event_id": event_id, "event_type": event_type, "payload": json.dumps(event)},
    ).first()
    if not inserted:
        row = db.execute(
            sa.text("SELECT status FROM stripe_webhook_events WHERE event_id=:event_id"),
            {"event_id": event_id},
        ).mappings().first()
        return {"event_id": event_id, "duplicate": True, "status": row["status"] if row else "ignored"}

    final_status = "ignored"
    error_message = None
    try:
        with db.begin_nested():
            state = subscription_for_event(event, retrieve)
            if state is not None and state.subscription_id and apply_subscription(db, state):
                final_status = "processed"
    except Exception as exc:
        logger.error("Stripe event %s (%s) failed", event_id, event_type, exc_info=True)
        final_status = "error"
        error_message = str(exc)[:1000]

    db.execute(
        sa.text(
            """
            UPDATE stripe_webhook_events
            SET status=:status, error_message=:error_message, processed_at=now()
            WHERE event_id=:event_id
            """
        ),
        {"event_id": event_id, "status": final_status, "error_message": error_message},
    )
    logger.info("Stripe event %s (%s) -> %s", event_id, event_type, final_status)
    return {"event_id": event_id, "duplicate": False, "status": final_status}
