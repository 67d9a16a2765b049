from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from datetime import timezone
import hashlib
import hmac
import json
import time
from urllib import error as urlerror
from urllib import parse as urlparse
from urllib import request as urlrequest

from app.core.config import settings


class BillingProviderError(RuntimeError):
    def __init__(self, operation: str, reason: str, status: int | None = None):
        self.operation = operation
        self.reason = reason
        self.status = status
        super().__init__(f"Stripe {operation} failed: {reason}")


@dataclass(frozen=True)
class CheckoutSessionRequest:
    customer_id: str
    price_id: str
    profile_id: int
    auth0_sub: str
    success_url: str
    cancel_url: str
    trial_days: int


@dataclass(frozen=True)
class CheckoutSessionResponse:
    provider_checkout_id: str
    checkout_url: str | None


@dataclass(frozen=True)
class SubscriptionState:
    subscription_id: str
    customer_id: str | None
    status: str
    cancel_at_period_end: bool
    current_period_start: datetime | None
    current_period_end: datetime | None
    price_id: str | None
    metadata: dict


def flatten_params(payload: dict, prefix: str = "") -> list[tuple[str, str]]:
    """Encode nested dicts/lists the way Stripe's form API expects (``a[b][0][c]=v``)."""
    out: list[tuple[str, str]] = []
    for key, value in payload.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            out.extend(flatten_params(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    out.extend(flatten_params(item, item_name))
                else:
                    out.append((item_name, str(item)))
        elif isinstance(value, bool):
            out.append((name, "true" if value else "false"))
        else:
            out.append((name, str(value)))
    return out


def _stripe_headers() -> dict[str, str]:
    if not settings.STRIPE_SECRET_KEY:
        raise NotImplementedError("STRIPE_SECRET_KEY is not configured")
    return {"Authorization": f"Bearer {settings.STRIPE_SECRET_KEY}", "Accept": "application/json"}


def _open_json(req: urlrequest.Request, operation: str) -> dict:
    try:
        with urlrequest.urlopen(req, timeout=settings.STRIPE_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
    except urlerror.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")[:300]
        raise BillingProviderError(operation, detail or exc.reason, exc.code) from exc
    except (urlerror.URLError, TimeoutError) as exc:
        raise BillingProviderError(operation, str(exc)) from exc
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise BillingProviderError(operation, "invalid JSON response") from exc


def _http_form_post(path: str, payload: dict, *, operation: str) -> dict:
    body = urlparse.urlencode(flatten_params(payload)).encode("utf-8")
    headers = _stripe_headers()
    headers["Content-Type"] = "application/x-www-form-urlencoded"
    req = urlrequest.Request(
        url=f"{settings.STRIPE_API_BASE_URL.rstrip('/')}{path}",
        method="POST",
        data=body,
        headers=headers,
    )
    return _open_json(req, operation)


def _http_json_get(path: str, *, operation: str) -> dict:
    req = urlrequest.Request(
        url=f"{settings.STRIPE_API_BASE_URL.rstrip('/')}{path}",
        method="GET",
        headers=_stripe_headers(),
    )
    return _open_json(req, operation)


def _epoch_to_datetime(value) -> datetime | None:
    if value in (None, "", 0):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _customer_id(customer) -> str | None:
    if not customer:
        return None
    if isinstance(customer, str):
        return customer
    if isinstance(customer, dict) and not customer.get("deleted"):
        return customer.get("id")
    return None


def parse_subscription(obj: dict) -> SubscriptionState:
    items = ((obj.get("items") or {}).get("data")) or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}
    # Newer API versions moved the billing period onto the subscription item.
    period_start = obj.get("current_period_start") or first_item.get("current_period_start")
    period_end = obj.get("current_period_end") or first_item.get("current_period_end")
    return SubscriptionState(
        subscription_id=str(obj.get("id") or ""),
        customer_id=_customer_id(obj.get("customer")),
        status=str(obj.get("status") or "incomplete"),
        cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        current_period_start=_epoch_to_datetime(period_start),
        current_period_end=_epoch_to_datetime(period_end),
        price_id=price.get("id") if isinstance(price.get("id"), str) else None,
        metadata=obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {},
    )


def customer_exists(customer_id: str) -> bool:
    try:
        data = _http_json_get(f"/customers/{urlparse.quote(customer_id, safe='')}", operation="customers.retrieve")
    except BillingProviderError:
        return False
    return not data.get("deleted")


def create_customer(*, email: str | None, metadata: dict[str, str]) -> str:
    data = _http_form_post("/customers", {"email": email, "metadata": metadata}, operation="customers.create")
    customer_id = data.get("id")
    if not customer_id:
        raise BillingProviderError("customers.create", "response without id")
    return str(customer_id)


def update_customer(customer_id: str, *, email: str | None, metadata: dict[str, str]) -> None:
    _http_form_post(
        f"/customers/{urlparse.quote(customer_id, safe='')}",
        {"email": email, "metadata": metadata},
        operation="customers.update",
    )


def create_checkout_session(request: CheckoutSessionRequest) -> CheckoutSessionResponse:
    metadata = {"profile_id": str(request.profile_id), "auth0_sub": request.auth0_sub}
    data = _http_form_post(
        "/checkout/sessions",
        {
            "mode": "subscription",
            "customer": request.customer_id,
            "allow_promotion_codes": True,
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata, "trial_period_days": request.trial_days},
            "line_items": [{"price": request.price_id, "quantity": 1}],
            "client_reference_id": str(request.profile_id),
        },
        operation="checkout.sessions.create",
    )
    return CheckoutSessionResponse(
        provider_checkout_id=str(data.get("id") or ""),
        checkout_url=data.get("url"),
    )


def create_portal_session(*, customer_id: str, return_url: str) -> str:
    data = _http_form_post(
        "/billing_portal/sessions",
        {"customer": customer_id, "return_url": return_url},
        operation="billing_portal.sessions.create",
    )
    url = data.get("url")
    if not url:
        raise BillingProviderError("billing_portal.sessions.create", "response without url")
    return str(url)


def retrieve_subscription(subscription_id: str) -> SubscriptionState:
    data = _http_json_get(
        f"/subscriptions/{urlparse.quote(subscription_id, safe='')}",
        operation="subscriptions.retrieve",
    )
    return parse_subscription(data)


def _parse_sig_header(signature_header: str | None) -> tuple[int, list[str]]:
    if not signature_header:
        return (0, [])
    timestamp = 0
    signatures: list[str] = []
    for part in signature_header.split(","):
        if "=" not in part:
            continue
        k, v = part.split("=", 1)
        key = k.strip().lower()
        val = v.strip()
        if key == "t":
            try:
                timestamp = int(val)
            except ValueError:
                timestamp = 0
        elif key == "v1":
            signatures.append(val)
    return (timestamp, signatures)


def verify_stripe_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret: str,
    max_age_seconds: int,
    *,
    now: int | None = None,
) -> bool:
    timestamp, signatures = _parse_sig_header(signature_header)
    if timestamp <= 0 or not signatures:
        return False
    current = int(time.time()) if now is None else now
    if abs(current - timestamp) > max_age_seconds:
        return False
    payload = f"{timestamp}.".encode("utf-8") + raw_body
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, s) for s in signatures)
