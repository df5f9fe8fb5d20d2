import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core.config import settings
from app.core.deps import get_order_service
from app.core.stripe_client import COMPLETED, to_gateway_payment, verify_event
from app.services.orders import OrderService

logger = logging.getLogger("app.webhooks")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request, svc: OrderService = Depends(get_order_service)
):
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook not configured",
        )
    # 1) read raw payload for signature verification
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature")

    # 2) verify signature
    try:
        event = verify_event(payload, sig_header)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid signature")

    if event.get("type") != COMPLETED:
        return {"ok": True, "ignored": True}

    payment = to_gateway_payment(event["data"]["object"])
    if payment is None:
        logger.info("stripe event %s is not a paid payment session", event.get("id"))
        return {"ok": True, "ignored": True}

    # 3) idempotent confirmation keyed by checkout session id
    result = svc.confirm_from_gateway(payment)
    return {
        "ok": True,
        "duplicate": result.duplicate,
        "error": result.error,
    }
