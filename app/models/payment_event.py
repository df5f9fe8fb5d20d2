import uuid
from datetime import datetime
from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class PaymentEvent(Base):
    __tablename__ = "payment_events"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # idempotency key: gateway checkout session id like "cs_..."
    external_session_id: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    correlation_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(24), nullable=False, server_default="received"
    )  # received|processed|ignored|error
    error: Mapped[str | None] = mapped_column(String(400), nullable=True)
