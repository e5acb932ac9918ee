"""Razorpay webhook route."""

import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from learngate.config import get_settings
from learngate.db.session import get_db
from learngate.services.payment_gateway import webhook_signature_matches
from learngate.services.subscription_service import (
    handle_payment_authorized,
    handle_payment_captured,
    handle_payment_failed,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/razorpay")
async def razorpay_webhook(
    request: Request,
    razorpay_signature: str = Header(alias="x-razorpay-signature"),
    db: AsyncSession = Depends(get_db),
):
    settings = get_settings()
    if not settings.razorpay_webhook_secret:
        raise HTTPException(status_code=503, detail="Webhook secret not configured")

    payload = await request.body()
    if not webhook_signature_matches(payload, razorpay_signature, settings.razorpay_webhook_secret):
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        event = json.loads(payload)
        event_type = event["event"]
        entity = event["payload"]["payment"]["entity"]
    except (ValueError, KeyError, TypeError):
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    logger.info("Razorpay webhook: %s", event_type)

    if event_type == "payment.captured":
        await handle_payment_captured(db, entity)
    elif event_type == "payment.authorized":
        await handle_payment_authorized(db, entity)
    elif event_type == "payment.failed":
        await handle_payment_failed(db, entity)

    return {"status": "ok"}
