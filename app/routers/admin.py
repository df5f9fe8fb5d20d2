from fastapi import APIRouter, Depends, Query

from app.core.admin import require_admin
from app.core.deps import get_order_service
from app.schemas.admin import AdminOrderOut, ConfirmOut, MarkPaidIn, NotifyOut
from app.services.orders import OrderService

router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


@router.get("/orders/stale", response_model=list[AdminOrderOut])
def stale_orders(
    minutes: int | None = Query(None, ge=1, le=7 * 24 * 60),
    svc: OrderService = Depends(get_order_service),
):
    """Orders stuck in processing; candidates for /retry."""
    return [AdminOrderOut.from_order(o) for o in svc.list_stale(minutes)]


@router.get("/orders", response_model=list[AdminOrderOut])
def list_orders(
    status: str = Query(...),
    limit: int = Query(100, ge=1, le=500),
    svc: OrderService = Depends(get_order_service),
):
    return [AdminOrderOut.from_order(o) for o in svc.list_orders(status, limit)]


@router.get("/orders/{order_id}", response_model=AdminOrderOut)
def get_order(order_id: str, svc: OrderService = Depends(get_order_service)):
    return AdminOrderOut.from_order(svc.get_any(order_id))


@router.post("/orders/{order_id}/mark-paid", response_model=ConfirmOut)
def mark_paid(
    order_id: str,
    payload: MarkPaidIn | None = None,
    svc: OrderService = Depends(get_order_service),
):
    """
    Manual payment confirmation. Replays are acknowledged without
    re-running the pipeline.
    """
    result = svc.confirm_manual(order_id, payload.payment_ref if payload else None)
    return ConfirmOut(
        order_id=result.order.id,
        status=result.order.status,
        already_paid=result.already_paid,
    )


@router.post("/orders/{order_id}/retry", response_model=AdminOrderOut)
def retry(order_id: str, svc: OrderService = Depends(get_order_service)):
    """
    Re-run the pipeline for a failed order (or one whose processing claim
    went stale). Never happens automatically.
    """
    return AdminOrderOut.from_order(svc.retry(order_id))


@router.post("/orders/{order_id}/notify", response_model=NotifyOut)
def resend_notification(order_id: str, svc: OrderService = Depends(get_order_service)):
    return NotifyOut(ok=svc.resend_notification(order_id), order_id=order_id)
