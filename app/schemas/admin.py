from datetime import datetime
from pydantic import BaseModel, Field

from app.models.order import Order


class MarkPaidIn(BaseModel):
    payment_ref: str | None = Field(default=None, max_length=255)


class ConfirmOut(BaseModel):
    ok: bool = True
    order_id: str
    status: str
    already_paid: bool = False


class AdminOrderOut(BaseModel):
    order_id: str
    owner_id: str
    status: str
    plan: str
    query: str
    amount_cents: int
    currency: str
    customer_email: str | None
    proof_ref: str | None
    payment_provider: str | None
    payment_ref: str | None
    document_url: str | None
    bundle_url: str | None
    failure_reason: str | None
    notify_error: str | None
    paid_at: datetime | None
    claimed_at: datetime | None
    ready_at: datetime | None
    notified_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_order(cls, o: Order) -> "AdminOrderOut":
        return cls(
            order_id=o.id,
            owner_id=o.owner_id,
            status=o.status,
            plan=o.plan,
            query=o.query,
            amount_cents=o.amount_cents,
            currency=o.currency,
            customer_email=o.customer_email,
            proof_ref=o.proof_ref,
            payment_provider=o.payment_provider,
            payment_ref=o.payment_ref,
            document_url=o.document_url,
            bundle_url=o.bundle_url,
            failure_reason=o.failure_reason,
            notify_error=o.notify_error,
            paid_at=o.paid_at,
            claimed_at=o.claimed_at,
            ready_at=o.ready_at,
            notified_at=o.notified_at,
            created_at=o.created_at,
            updated_at=o.updated_at,
        )


class NotifyOut(BaseModel):
    ok: bool
    order_id: str
