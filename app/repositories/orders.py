import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.errors import Conflict, InvalidState, NotFound
from app.models.order import Order, OrderStatus, Plan, can_transition

logger = logging.getLogger("app.repositories.orders")

# columns a status transition may never touch through its patch
_IMMUTABLE = frozenset({"id", "owner_id", "plan", "query", "status", "created_at"})


class OrderRepository:
    """Durable CRUD for orders.

    compare_and_set_status is the only mutation used by the pipeline and the
    confirmation paths: a single conditional UPDATE committed on its own, so
    two concurrent triggers can never both apply.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        owner_id: str,
        plan: Plan,
        query: str,
        *,
        amount_cents: int,
        currency: str,
        customer_email: str | None = None,
        download_token: str | None = None,
        token_expires_at: datetime | None = None,
    ) -> Order:
        order = Order(
            owner_id=owner_id,
            plan=plan.value,
            query=query,
            status=OrderStatus.PENDING_PAYMENT.value,
            amount_cents=amount_cents,
            currency=currency,
            customer_email=customer_email,
            download_token=download_token,
            download_token_expires_at=token_expires_at,
            download_token_used=False,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get(self, order_id: str) -> Order:
        order = self.db.get(Order, order_id, populate_existing=True)
        if not order:
            raise NotFound("Order not found")
        return order

    def get_by_token(self, token: str) -> Order:
        order = self.db.scalars(
            select(Order)
            .where(Order.download_token == token)
            .execution_options(populate_existing=True)
        ).first()
        if not order:
            raise NotFound("Invalid token")
        return order

    def compare_and_set_status(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        patch: dict[str, Any] | None = None,
    ) -> Order:
        if not can_transition(expected, new):
            raise InvalidState(f"Transition {expected.value} -> {new.value} not allowed")

        values = dict(patch or {})
        bad = _IMMUTABLE.intersection(values)
        if bad:
            raise ValueError(f"patch touches immutable fields: {sorted(bad)}")
        values["status"] = new.value

        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount != 1:
            current = self.get(order_id)
            raise Conflict(
                f"Order is {current.status}, expected {expected.value}"
            )

        logger.info("order %s: %s -> %s", order_id, expected.value, new.value)
        return self.get(order_id)

    def attach_proof(self, order_id: str, proof_ref: str) -> Order:
        result = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING_PAYMENT.value,
                Order.proof_ref.is_(None),
            )
            .values(status=OrderStatus.PROOF_SUBMITTED.value, proof_ref=proof_ref)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount != 1:
            current = self.get(order_id)
            raise InvalidState(f"Order is not awaiting proof (status={current.status})")

        logger.info("order %s: proof attached", order_id)
        return self.get(order_id)

    def consume_download_token(self, order_id: str, token: str) -> bool:
        result = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.download_token == token,
                Order.download_token_used.is_(False),
            )
            .values(download_token_used=True)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def record_notification(self, order_id: str, error: str | None = None) -> None:
        values: dict[str, Any] = {"notify_error": error[:400] if error else None}
        if error is None:
            values["notified_at"] = utcnow()
        self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def list_stale_processing(self, older_than: datetime) -> list[Order]:
        return list(
            self.db.scalars(
                select(Order)
                .where(
                    Order.status == OrderStatus.PROCESSING.value,
                    Order.claimed_at < older_than,
                )
                .order_by(Order.claimed_at.asc())
                .execution_options(populate_existing=True)
            )
        )

    def list_by_status(self, status: OrderStatus, limit: int = 100) -> list[Order]:
        return list(
            self.db.scalars(
                select(Order)
                .where(Order.status == status.value)
                .order_by(Order.created_at.desc())
                .limit(limit)
                .execution_options(populate_existing=True)
            )
        )
