import hashlib
import hmac

from app.services.billing_provider import flatten_params, parse_subscription, verify_stripe_signature

SECRET = "whsec_test"
BODY = b'{"id":"evt_1","type":"customer.subscription.updated"}'


def _sign(body: bytes, timestamp: int, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def test_flatten_params_matches_stripe_form_encoding():
    params = flatten_params(
        {
            "mode": "subscription",
            "customer": None,
            "allow_promotion_codes": True,
            "metadata": {"profile_id": "7"},
            "subscription_data": {"trial_period_days": 7, "metadata": {"auth0_sub": "auth0|x"}},
            "line_items": [{"price": "price_1", "quantity": 1}],
        }
    )
    assert params == [
        ("mode", "subscription"),
        ("allow_promotion_codes", "true"),
        ("metadata[profile_id]", "7"),
        ("subscription_data[trial_period_days]", "7"),
        ("subscription_data[metadata][auth0_sub]", "auth0|x"),
        ("line_items[0][price]", "price_1"),
        ("line_items[0][quantity]", "1"),
    ]


def test_valid_signature_is_accepted():
    header = _sign(BODY, 1_700_000_000)
    assert verify_stripe_signature(BODY, header, SECRET, 300, now=1_700_000_100)


def test_any_matching_v1_signature_is_accepted():
    header = "t=1700000000,v1=deadbeef," + _sign(BODY, 1_700_000_000).split(",")[1]
    assert verify_stripe_signature(BODY, header, SECRET, 300, now=1_700_000_000)


def test_tampered_body_is_rejected():
    header = _sign(BODY, 1_700_000_000)
    assert not verify_stripe_signature(BODY + b" ", header, SECRET, 300, now=1_700_000_000)


def test_wrong_secret_is_rejected():
    header = _sign(BODY, 1_700_000_000, secret="other")
    assert not verify_stripe_signature(BODY, header, SECRET, 300, now=1_700_000_000)


def test_stale_signature_is_rejected():
    header = _sign(BODY, 1_700_000_000)
    assert not verify_stripe_signature(BODY, header, SECRET, 300, now=1_700_000_301)


def test_malformed_headers_are_rejected():
    assert not verify_stripe_signature(BODY, None, SECRET, 300)
    assert not verify_stripe_signature(BODY, "garbage", SECRET, 300)
    assert not verify_stripe_signature(BODY, "t=abc,v1=00", SECRET, 300)


def test_parse_subscription_reads_item_periods_and_price():
    state = parse_subscription(
        {
            "id": "sub_1",
            "customer": {"id": "cus_1"},
            "status": "trialing",
            "cancel_at_period_end": False,
            "metadata": {"auth0_sub": "auth0|x"},
            "items": {
                "data": [
                    {
                        "price": {"id": "price_1"},
                        "current_period_start": 1_700_000_000,
                        "current_period_end": 1_700_604_800,
                    }
                ]
            },
        }
    )
    assert state.subscription_id == "sub_1"
    assert state.customer_id == "cus_1"
    assert state.price_id == "price_1"
    assert state.current_period_end is not None
    assert int(state.current_period_end.timestamp()) == 1_700_604_800
    assert state.metadata == {"auth0_sub": "auth0|x"}


def test_parse_subscription_ignores_deleted_customer():
    state = parse_subscription({"id": "sub_2", "customer": {"id": "cus_2", "deleted": True}})
    assert state.customer_id is None
    assert state.status == "incomplete"
    assert state.current_period_end is None
