from typing import Literal

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import RedirectResponse

from app.core.config import settings
from app.core.deps import get_current_owner, get_order_service
from app.schemas.order import OrderCreateIn, OrderCreateOut, OrderStatusOut, ProofOut
from app.services.orders import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderCreateOut, status_code=201)
def create_order(
    payload: OrderCreateIn,
    owner_id: str = Depends(get_current_owner),
    svc: OrderService = Depends(get_order_service),
):
    """
    Creates a pending_payment order. Pay through /stripe/checkout/{order_id}
    or upload a proof and wait for an admin to mark it paid.
    """
    order = svc.create_order(owner_id, payload.plan, payload.query, payload.email)
    return OrderCreateOut(
        order_id=order.id,
        status=order.status,
        plan=order.plan,
        amount_cents=order.amount_cents,
        currency=order.currency,
    )


@router.get("/download/{token}")
def redeem_download_token(
    token: str,
    kind: Literal["document", "bundle"] = "document",
    owner_id: str = Depends(get_current_owner),
    svc: OrderService = Depends(get_order_service),
):
    """Single-use exchange of a download token for a redirect."""
    url = svc.redeem_download_token(token, owner_id, kind)
    return RedirectResponse(url, status_code=302)


@router.post("/{order_id}/proof", response_model=ProofOut)
def attach_proof(
    order_id: str,
    file: UploadFile = File(...),
    owner_id: str = Depends(get_current_owner),
    svc: OrderService = Depends(get_order_service),
):
    # read one byte past the limit so oversize uploads are detectable
    data = file.file.read(settings.MAX_PROOF_BYTES + 1)
    order = svc.attach_proof(
        order_id,
        owner_id,
        data=data,
        filename=file.filename,
        content_type=file.content_type,
    )
    return ProofOut(order_id=order.id, status=order.status)


@router.get("/{order_id}", response_model=OrderStatusOut)
def get_order_status(
    order_id: str,
    owner_id: str = Depends(get_current_owner),
    svc: OrderService = Depends(get_order_service),
):
    return OrderStatusOut.from_order(svc.get_status(order_id, owner_id))


@router.get("/{order_id}/download")
def download(
    order_id: str,
    kind: Literal["document", "bundle"] = "document",
    owner_id: str = Depends(get_current_owner),
    svc: OrderService = Depends(get_order_service),
):
    url = svc.get_download(order_id, owner_id, kind)
    return RedirectResponse(url, status_code=302)
