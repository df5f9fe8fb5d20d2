import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, false, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Plan(str, enum.Enum):
    BASIC = "BASIC"
    PRO = "PRO"


class OrderStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    PROOF_SUBMITTED = "proof_submitted"
    PAID = "paid"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


# failed -> paid is the explicit admin retry; nothing else moves backwards
TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: frozenset(
        {OrderStatus.PROOF_SUBMITTED, OrderStatus.PAID}
    ),
    OrderStatus.PROOF_SUBMITTED: frozenset({OrderStatus.PAID}),
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.READY, OrderStatus.FAILED}),
    OrderStatus.READY: frozenset(),
    OrderStatus.FAILED: frozenset({OrderStatus.PAID}),
}

AWAITING_PAYMENT = frozenset({OrderStatus.PENDING_PAYMENT, OrderStatus.PROOF_SUBMITTED})


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in TRANSITIONS[current]


class Order(Base):
    """
    One paid report request.
    pending_payment -> (proof_submitted) -> paid -> processing -> ready | failed
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    owner_id: Mapped[str] = mapped_column(String(120), index=True, nullable=False)
    plan: Mapped[str] = mapped_column(String(16), nullable=False)
    query: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[str] = mapped_column(
        String(24),
        nullable=False,
        index=True,
        default=OrderStatus.PENDING_PAYMENT.value,
        server_default=OrderStatus.PENDING_PAYMENT.value,
    )

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)

    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    proof_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # admin | stripe
    payment_provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    document_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    bundle_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    download_token: Mapped[str | None] = mapped_column(
        String(120), nullable=True, unique=True, index=True
    )
    download_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    download_token_used: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    failure_reason: Mapped[str | None] = mapped_column(String(400), nullable=True)
    notify_error: Mapped[str | None] = mapped_column(String(400), nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def has_artifacts(self) -> bool:
        return bool(self.document_url)
