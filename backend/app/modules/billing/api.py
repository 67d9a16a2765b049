import json

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.logger import setup_logger
from app.db.session import get_db
from app.schemas.premium import StripeWebhookOut
from app.services.billing_provider import verify_stripe_signature
from app.services.premium import ingest_stripe_event

router = APIRouter()
logger = setup_logger(__name__)


@router.post("/webhook", response_model=StripeWebhookOut)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not set")
        raise HTTPException(500, "webhook_unconfigured")

    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(400, "missing_signature")

    raw = await request.body()
    if not verify_stripe_signature(raw, signature, settings.STRIPE_WEBHOOK_SECRET, settings.STRIPE_WEBHOOK_MAX_AGE_SECONDS):
        logger.warning("Stripe webhook signature verification failed")
        raise HTTPException(400, "signature_verification_failed")

    try:
        event = json.loads(raw)
    except ValueError:
        raise HTTPException(400, "invalid_payload")
    if not isinstance(event, dict):
        raise HTTPException(400, "invalid_payload")

    try:
        out = await run_in_threadpool(ingest_stripe_event, db, event)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    if out["status"] == "error":
        # Stripe retries non-2xx deliveries; the ledger lets the retry through.
        raise HTTPException(500, "handler_failed")
    return StripeWebhookOut(**out)
