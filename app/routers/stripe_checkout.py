import stripe
from fastapi import APIRouter, Depends, HTTPException

from app.core.config import settings
from app.core.deps import get_current_owner, get_order_service
from app.core.stripe_client import stripe_configured
from app.models.order import AWAITING_PAYMENT
from app.services.orders import OrderService

router = APIRouter(prefix="/stripe", tags=["stripe"])


@router.post("/checkout/{order_id}")
def create_checkout_session(
    order_id: str,
    owner_id: str = Depends(get_current_owner),
    svc: OrderService = Depends(get_order_service),
):
    if not stripe_configured():
        raise HTTPException(status_code=503, detail="Payments not configured")

    order = svc.get_status(order_id, owner_id)
    if order.status_enum not in AWAITING_PAYMENT:
        raise HTTPException(
            status_code=409, detail=f"Order not payable (status={order.status})"
        )

    success_url = f"{settings.FRONTEND_URL}/orders/success?order_id={order.id}"
    cancel_url = f"{settings.FRONTEND_URL}/orders/cancel?order_id={order.id}"

    params = {}
    if order.customer_email:
        params["customer_email"] = order.customer_email

    session = stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        line_items=[
            {
                "price_data": {
                    "currency": order.currency.lower(),
                    "product_data": {"name": f"{order.plan} report"},
                    "unit_amount": int(order.amount_cents),
                },
                "quantity": 1,
            }
        ],
        metadata={"order_id": order.id},
        client_reference_id=order.id,
        success_url=success_url,
        cancel_url=cancel_url,
        **params,
    )

    return {"checkout_url": session.url, "session_id": session.id}
