from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.models.payment_event import PaymentEvent


class PaymentEventRepository:
    """Idempotency ledger for gateway deliveries, keyed by session id."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        external_session_id: str,
        *,
        correlation_ref: str | None,
        amount_cents: int | None,
        currency: str | None,
        customer_email: str | None,
    ) -> bool:
        """Insert the event. False means it was already delivered."""
        try:
            self.db.add(
                PaymentEvent(
                    external_session_id=external_session_id,
                    correlation_ref=correlation_ref,
                    amount_cents=amount_cents,
                    currency=currency,
                    customer_email=customer_email,
                    status="received",
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def finish(self, external_session_id: str, status: str, error: str | None = None) -> None:
        self.db.execute(
            update(PaymentEvent)
            .where(PaymentEvent.external_session_id == external_session_id)
            .values(
                status=status,
                processed_at=utcnow(),
                error=error[:400] if error else None,
            )
        )
        self.db.commit()

    def discard(self, external_session_id: str) -> None:
        # lets a redelivery of the same event try again
        self.db.execute(
            delete(PaymentEvent).where(
                PaymentEvent.external_session_id == external_session_id
            )
        )
        self.db.commit()

    def get(self, external_session_id: str) -> PaymentEvent | None:
        return (
            self.db.query(PaymentEvent)
            .filter(PaymentEvent.external_session_id == external_session_id)
            .first()
        )
