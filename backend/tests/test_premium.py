from datetime import datetime, timedelta, timezone

import pytest

from app.core.config import settings
from app.services import premium
from app.services.billing_provider import SubscriptionState
from app.services.premium import (
    is_env_forced_profile,
    is_subscription_active,
    parse_profile_id,
    safe_return_url,
    subscription_for_event,
)

NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("status", ["active", "trialing", "past_due"])
def test_active_statuses_with_future_period(status):
    assert is_subscription_active(status, NOW + timedelta(days=1), NOW)


@pytest.mark.parametrize("status", ["canceled", "incomplete", "unpaid", None, ""])
def test_inactive_statuses(status):
    assert not is_subscription_active(status, NOW + timedelta(days=1), NOW)


def test_expired_period_is_inactive():
    assert not is_subscription_active("active", NOW - timedelta(seconds=1), NOW)


def test_badge_requires_period_end_and_respects_preference():
    future = {"status": "active", "current_period_end": NOW + timedelta(days=3)}
    assert premium._badge_from(future, None, NOW) == premium.BadgeStatus(True, True)
    assert premium._badge_from(future, False, NOW) == premium.BadgeStatus(True, False)
    open_ended = {"status": "active", "current_period_end": None}
    assert premium._badge_from(open_ended, True, NOW) == premium.BadgeStatus(False, False)
    assert premium._badge_from(None, True, NOW) == premium.BadgeStatus(False, False)


@pytest.mark.parametrize(
    "value, expected",
    [(7, 7), ("12", 12), (" 5 ", 5), (0, None), (-3, None), ("abc", None), (None, None), (True, None)],
)
def test_parse_profile_id(value, expected):
    assert parse_profile_id(value) == expected


def test_safe_return_url_only_allows_site_origin():
    base = "https://dow.example.com/"
    assert safe_return_url("https://evil.example.com/account", base) is None
    assert safe_return_url("http://dow.example.com/account", base) is None
    assert safe_return_url(None, base) is None
    assert safe_return_url("https://dow.example.com/account?x=1&session_id=abc", base) == "https://dow.example.com/account?x=1"
    kept = "https://dow.example.com/account?session_id={CHECKOUT_SESSION_ID}"
    assert safe_return_url(kept, base, allow_session_placeholder=True) == kept


def test_env_forced_profiles(monkeypatch):
    monkeypatch.setattr(settings, "FORCE_ADVANCED_STATS", False)
    monkeypatch.setattr(settings, "FORCE_ADVANCED_STATS_PROFILES", " 100, 200 ,")
    assert is_env_forced_profile("100")
    assert is_env_forced_profile("200")
    assert not is_env_forced_profile("300")
    assert not is_env_forced_profile(None)

    monkeypatch.setattr(settings, "FORCE_ADVANCED_STATS", True)
    assert is_env_forced_profile("300")


def test_subscription_events_parse_the_event_object():
    event = {
        "type": "customer.subscription.updated",
        "data": {"object": {"id": "sub_1", "customer": "cus_1", "status": "active"}},
    }
    state = subscription_for_event(event, retrieve=lambda _: pytest.fail("no lookup expected"))
    assert state.subscription_id == "sub_1"
    assert state.customer_id == "cus_1"


def test_checkout_completed_retrieves_the_subscription():
    retrieved = SubscriptionState("sub_9", "cus_9", "trialing", False, None, None, "price_1", {})
    calls = []

    def retrieve(subscription_id):
        calls.append(subscription_id)
        return retrieved

    event = {"type": "checkout.session.completed", "data": {"object": {"subscription": "sub_9"}}}
    assert subscription_for_event(event, retrieve=retrieve) is retrieved
    assert calls == ["sub_9"]


def test_unhandled_events_are_ignored():
    assert subscription_for_event({"type": "invoice.paid", "data": {"object": {}}}) is None
    assert subscription_for_event({"type": "checkout.session.completed", "data": {"object": {}}}) is None
