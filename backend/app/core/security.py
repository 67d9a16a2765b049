import json
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from urllib import error as urlerror
from urllib import request as urlrequest

from jose import jwt

from app.core.config import settings


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Identity:
    sub: str
    email: str | None
    email_verified: bool | None


def _issuer() -> str | None:
    if not settings.AUTH0_DOMAIN:
        return None
    domain = settings.AUTH0_DOMAIN.strip().rstrip("/")
    if not domain.startswith("http"):
        domain = f"https://{domain}"
    return domain + "/"


class AuthUnavailable(RuntimeError):
    pass


def _download_jwks(issuer: str) -> dict:
    req = urlrequest.Request(url=f"{issuer}.well-known/jwks.json", method="GET")
    try:
        with urlrequest.urlopen(req, timeout=settings.AUTH0_JWKS_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
        jwks = json.loads(raw)
    except (urlerror.URLError, TimeoutError, ValueError) as exc:
        raise AuthUnavailable(f"JWKS fetch failed: {exc}") from exc
    if not isinstance(jwks, dict):
        raise AuthUnavailable("JWKS response is not an object")
    return jwks


@lru_cache(maxsize=1)
def _cached_jwks(issuer: str) -> dict:
    return _download_jwks(issuer)


def jwks_for_kid(issuer: str, kid: str | None) -> dict:
    """Cached key set; refetched once when the token names a key it lacks."""
    jwks = _cached_jwks(issuer)
    known = {k.get("kid") for k in jwks.get("keys") or [] if isinstance(k, dict)}
    if kid and kid not in known:
        _cached_jwks.cache_clear()
        jwks = _cached_jwks(issuer)
    return jwks


def _signing_key(token: str) -> str | dict:
    algorithm = settings.AUTH0_ALGORITHM.upper()
    if algorithm.startswith("HS"):
        if not settings.AUTH0_JWT_SECRET:
            raise NotImplementedError("AUTH0_JWT_SECRET is required for HS* tokens")
        return settings.AUTH0_JWT_SECRET
    issuer = _issuer()
    if not issuer:
        raise NotImplementedError("AUTH0_DOMAIN is required to verify tokens")
    return jwks_for_kid(issuer, jwt.get_unverified_header(token).get("kid"))


def decode_token(token: str) -> dict:
    options = {"verify_aud": bool(settings.AUTH0_AUDIENCE)}
    return jwt.decode(
        token,
        _signing_key(token),
        algorithms=[settings.AUTH0_ALGORITHM.upper()],
        audience=settings.AUTH0_AUDIENCE,
        issuer=_issuer(),
        options=options,
    )
