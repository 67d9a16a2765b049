from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.core.logger import setup_logger
from app.core.security import AuthUnavailable, Identity, decode_token
from app.services.relic import open_relic_client

bearer = HTTPBearer()
logger = setup_logger(__name__)


def get_current_identity(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> Identity:
    try:
        payload = decode_token(creds.credentials)
    except NotImplementedError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except AuthUnavailable:
        logger.error("Token verification unavailable", exc_info=True)
        raise HTTPException(status_code=503, detail="auth_unavailable")
    except JWTError:
        raise HTTPException(status_code=401, detail="not_authenticated")
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="not_authenticated")
    email = payload.get("email")
    return Identity(
        sub=str(sub),
        email=email.strip().lower() if isinstance(email, str) and email.strip() else None,
        email_verified=payload.get("email_verified"),
    )


async def get_relic_client():
    async with open_relic_client() as client:
        yield client
