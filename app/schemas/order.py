from datetime import datetime
from pydantic import BaseModel, EmailStr

from app.models.order import Order, OrderStatus

# shown to owners instead of the recorded reason, which may carry provider errors
FAILURE_MESSAGE = "The report could not be produced. Please contact support."


class OrderCreateIn(BaseModel):
    # plan and query are validated by the service so every caller gets the same errors
    plan: str
    query: str
    email: EmailStr | None = None


class OrderCreateOut(BaseModel):
    order_id: str
    status: str
    plan: str
    amount_cents: int
    currency: str


class ArtifactsOut(BaseModel):
    document_url: str
    bundle_url: str | None


class DownloadTokenOut(BaseModel):
    value: str
    expires_at: datetime | None


class OrderStatusOut(BaseModel):
    order_id: str
    status: str
    plan: str
    query: str
    amount_cents: int
    currency: str
    proof_submitted: bool
    artifacts: ArtifactsOut | None = None
    download_token: DownloadTokenOut | None = None
    failure_reason: str | None = None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_order(cls, order: Order) -> "OrderStatusOut":
        ready = order.status == OrderStatus.READY.value
        artifacts = None
        token = None
        if ready and order.document_url:
            artifacts = ArtifactsOut(
                document_url=order.document_url, bundle_url=order.bundle_url
            )
            if order.download_token and not order.download_token_used:
                token = DownloadTokenOut(
                    value=order.download_token,
                    expires_at=order.download_token_expires_at,
                )
        return cls(
            order_id=order.id,
            status=order.status,
            plan=order.plan,
            query=order.query,
            amount_cents=order.amount_cents,
            currency=order.currency,
            proof_submitted=bool(order.proof_ref),
            artifacts=artifacts,
            download_token=token,
            failure_reason=(
                FAILURE_MESSAGE if order.status == OrderStatus.FAILED.value else None
            ),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class ProofOut(BaseModel):
    ok: bool = True
    order_id: str
    status: str
