import stripe

from app.core.config import settings
from app.services.orders import GatewayPayment

stripe.api_key = settings.STRIPE_API_KEY

COMPLETED = "checkout.session.completed"


def stripe_configured() -> bool:
    return bool(settings.STRIPE_API_KEY)


def verify_event(payload: bytes, sig_header: str):
    return stripe.Webhook.construct_event(
        payload=payload,
        sig_header=sig_header,
        secret=settings.STRIPE_WEBHOOK_SECRET,
    )


def to_gateway_payment(session) -> GatewayPayment | None:
    """Map a completed Checkout session onto a payment; None if it is not a paid one."""
    if session.get("mode") != "payment" or session.get("payment_status") != "paid":
        return None
    metadata = session.get("metadata") or {}
    details = session.get("customer_details") or {}
    amount_total = session.get("amount_total")
    return GatewayPayment(
        external_session_id=session.get("id"),
        correlation_ref=metadata.get("order_id") or session.get("client_reference_id"),
        amount_cents=int(amount_total) if amount_total is not None else None,
        currency=(session.get("currency") or "").upper() or None,
        customer_email=details.get("email") or session.get("customer_email"),
    )
