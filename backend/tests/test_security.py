from urllib import error as urlerror

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from app.api.deps import get_current_identity
from app.core import security
from app.core.config import settings

ISSUER = "https://tenant.example.com/"


@pytest.fixture(autouse=True)
def rs256_tenant(monkeypatch):
    monkeypatch.setattr(settings, "AUTH0_DOMAIN", "tenant.example.com")
    monkeypatch.setattr(settings, "AUTH0_ALGORITHM", "RS256")
    security._cached_jwks.cache_clear()
    yield
    security._cached_jwks.cache_clear()


def _creds(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def _token(kid: str) -> str:
    return jwt.encode({"sub": "auth0|1"}, "unused", algorithm="HS256", headers={"kid": kid})


def test_jwks_outage_is_service_unavailable(monkeypatch):
    def unreachable(*args, **kwargs):
        raise urlerror.URLError("timed out")

    monkeypatch.setattr(security.urlrequest, "urlopen", unreachable)
    with pytest.raises(HTTPException) as exc:
        get_current_identity(_creds(_token("k1")))

    assert exc.value.status_code == 503
    assert exc.value.detail == "auth_unavailable"


def test_failed_fetch_is_not_cached(monkeypatch):
    calls = []

    def flaky(issuer):
        calls.append(issuer)
        if len(calls) == 1:
            raise security.AuthUnavailable("down")
        return {"keys": [{"kid": "k1"}]}

    monkeypatch.setattr(security, "_download_jwks", flaky)
    with pytest.raises(security.AuthUnavailable):
        security.jwks_for_kid(ISSUER, "k1")
    assert security.jwks_for_kid(ISSUER, "k1") == {"keys": [{"kid": "k1"}]}


def test_unknown_kid_refetches_key_set_once(monkeypatch):
    before = {"keys": [{"kid": "old"}]}
    after = {"keys": [{"kid": "old"}, {"kid": "new"}]}
    calls = []

    def download(issuer):
        calls.append(issuer)
        return before if len(calls) == 1 else after

    monkeypatch.setattr(security, "_download_jwks", download)

    assert security.jwks_for_kid(ISSUER, "old") == before
    assert security.jwks_for_kid(ISSUER, "new") == after
    assert security.jwks_for_kid(ISSUER, "new") == after
    assert len(calls) == 2


def test_malformed_token_is_unauthenticated():
    with pytest.raises(HTTPException) as exc:
        get_current_identity(_creds("not-a-jwt"))

    assert exc.value.status_code == 401
