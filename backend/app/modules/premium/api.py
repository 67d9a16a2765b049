from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from app.api.deps import get_current_identity
from app.core.logger import setup_logger
from app.core.security import Identity
from app.db.session import get_db
from app.schemas.premium import (
    ActivationStatusOut,
    BadgeStatusesIn,
    BadgeStatusesOut,
    BadgeStatusOut,
    CheckoutIn,
    RedirectOut,
)
from app.services.billing_provider import BillingProviderError
from app.services.premium import activation_status, open_portal, pro_badge_statuses, start_checkout

router = APIRouter()
logger = setup_logger(__name__)

CACHE_ACTIVATION = "private, max-age=0, s-maxage=30"


@router.post("/premium/checkout", response_model=RedirectOut)
def premium_checkout(
    payload: CheckoutIn | None = None,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    payload = payload or CheckoutIn()
    try:
        url = start_checkout(
            db,
            identity,
            requested_profile_id=payload.profile_id,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
    except NotImplementedError as exc:
        raise HTTPException(503, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    except BillingProviderError as exc:
        logger.error("Checkout for %s failed: %s", identity.sub, exc)
        db.rollback()
        raise HTTPException(502, "checkout_creation_failed")
    db.commit()
    return RedirectOut(url=url)


@router.post("/premium/portal", response_model=RedirectOut)
def premium_portal(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    try:
        url = open_portal(db, identity.sub)
    except NotImplementedError as exc:
        raise HTTPException(503, str(exc))
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    except BillingProviderError as exc:
        logger.error("Billing portal for %s failed: %s", identity.sub, exc)
        raise HTTPException(502, "portal_creation_failed")
    return RedirectOut(url=url)


@router.get("/premium/activation-status", response_model=ActivationStatusOut)
def premium_activation_status(
    response: Response,
    profile_id: int = Query(alias="profileId", gt=0),
    db: Session = Depends(get_db),
):
    status = activation_status(db, profile_id)
    response.headers["Cache-Control"] = CACHE_ACTIVATION
    return ActivationStatusOut.model_validate(status)


@router.post("/pro/badge-status", response_model=BadgeStatusesOut)
def pro_badge_status(payload: BadgeStatusesIn, db: Session = Depends(get_db)):
    statuses = pro_badge_statuses(db, payload.profile_ids)
    return BadgeStatusesOut(
        statuses={str(pid): BadgeStatusOut.model_validate(s) for pid, s in statuses.items()}
    )
