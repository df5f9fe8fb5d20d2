import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import Session

from app.core.clock import as_utc, utcnow
from app.core.config import Settings, settings as default_settings
from app.core.errors import (
    Conflict,
    DependencyFailure,
    Forbidden,
    InvalidArgument,
    Internal,
    InvalidState,
    NotFound,
    ServiceError,
)
from app.core.security import download_token_expiry, new_download_token
from app.models.order import AWAITING_PAYMENT, Order, OrderStatus, Plan
from app.repositories.orders import OrderRepository
from app.repositories.payment_events import PaymentEventRepository
from app.services.storage import artifact_keys
from app.services.wiring import Services

logger = logging.getLogger("app.orders")

MAX_QUERY_LEN = 200

PROOF_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "application/pdf": ".pdf",
}

ARTIFACT_KINDS = ("document", "bundle")


@dataclass
class GatewayPayment:
    """A signature-verified payment event, already mapped off the gateway payload."""

    external_session_id: str
    correlation_ref: str | None
    amount_cents: int | None
    currency: str | None = None
    customer_email: str | None = None


@dataclass
class ConfirmResult:
    order: Order | None
    dispatched: bool = False
    already_paid: bool = False
    duplicate: bool = False
    error: str | None = None


class OrderService:
    def __init__(self, db: Session, services: Services, settings: Settings = default_settings):
        self.db = db
        self.repo = OrderRepository(db)
        self.events = PaymentEventRepository(db)
        self.services = services
        self.settings = settings

    # ---- helpers ----

    def price_for(self, plan: Plan) -> int:
        if plan == Plan.PRO:
            return self.settings.PRICE_PRO_CENTS
        return self.settings.PRICE_BASIC_CENTS

    def _owned(self, order_id: str, owner_id: str) -> Order:
        order = self.repo.get(order_id)
        if order.owner_id != owner_id:
            raise Forbidden()
        return order

    def dispatch(self, order_id: str) -> None:
        self.services.dispatcher.submit(self.services.pipeline.run, order_id)

    def _artifact_url(self, order: Order, kind: str) -> str:
        try:
            return self.services.artifact_store.url_for(artifact_keys(order.id)[kind])
        except Exception as e:
            logger.exception("could not issue download url")
            raise DependencyFailure("Could not issue download link") from e

    # ---- owner operations ----

    def create_order(
        self,
        owner_id: str,
        plan: str,
        query: str,
        customer_email: str | None = None,
    ) -> Order:
        if not owner_id:
            raise InvalidArgument("Owner is required")
        try:
            plan_enum = Plan((plan or "").strip().upper())
        except ValueError:
            raise InvalidArgument("Invalid plan")

        query = (query or "").strip()
        if not query:
            raise InvalidArgument("Query is required")
        if len(query) > MAX_QUERY_LEN:
            raise InvalidArgument(f"Query longer than {MAX_QUERY_LEN} characters")

        order = self.repo.create(
            owner_id,
            plan_enum,
            query,
            amount_cents=self.price_for(plan_enum),
            currency=self.settings.CURRENCY,
            customer_email=customer_email,
            download_token=new_download_token(),
            token_expires_at=download_token_expiry(),
        )
        logger.info("order %s created plan=%s", order.id, order.plan)
        return order

    def attach_proof(
        self,
        order_id: str,
        owner_id: str,
        *,
        data: bytes,
        filename: str | None,
        content_type: str | None,
    ) -> Order:
        if not data:
            raise InvalidArgument("Empty proof file")
        if len(data) > self.settings.MAX_PROOF_BYTES:
            raise InvalidArgument("Proof file too large")
        ext = PROOF_TYPES.get((content_type or "").lower())
        if not ext:
            raise InvalidArgument("Unsupported proof type")

        order = self._owned(order_id, owner_id)
        if order.status_enum != OrderStatus.PENDING_PAYMENT or order.proof_ref:
            raise InvalidState(f"Order is not awaiting proof (status={order.status})")

        key = f"{order.id}{ext}"
        try:
            self.services.proof_store.put(data, key, content_type)
        except Exception as e:
            logger.exception("proof upload failed")
            raise DependencyFailure("Could not store proof") from e

        order = self.repo.attach_proof(order.id, key)
        logger.info("order %s proof stored (%s, %d bytes)", order.id, filename, len(data))
        return order

    def get_status(self, order_id: str, owner_id: str) -> Order:
        return self._owned(order_id, owner_id)

    def get_download(self, order_id: str, owner_id: str, kind: str = "document") -> str:
        if kind not in ARTIFACT_KINDS:
            raise InvalidArgument("Unknown artifact")
        order = self._owned(order_id, owner_id)
        if order.status_enum != OrderStatus.READY:
            raise Conflict("Order not ready")
        return self._artifact_url(order, kind)

    def redeem_download_token(self, token: str, owner_id: str, kind: str = "document") -> str:
        if kind not in ARTIFACT_KINDS:
            raise InvalidArgument("Unknown artifact")
        order = self.repo.get_by_token(token)
        if order.owner_id != owner_id:
            raise Forbidden()
        if order.download_token_used:
            raise Forbidden("Download token already used")
        expires_at = as_utc(order.download_token_expires_at)
        if not expires_at or expires_at <= utcnow():
            raise Forbidden("Download token expired")
        if order.status_enum != OrderStatus.READY:
            raise Conflict("Order not ready")

        if not self.repo.consume_download_token(order.id, token):
            raise Forbidden("Download token already used")
        return self._artifact_url(order, kind)

    # ---- payment confirmation ----

    def _confirm(
        self,
        order_id: str,
        *,
        provider: str,
        payment_ref: str | None,
        customer_email: str | None = None,
    ) -> ConfirmResult:
        order = self.repo.get(order_id)
        # at most pending_payment -> proof_submitted can race us before paid
        for _ in range(3):
            status = order.status_enum
            if status not in AWAITING_PAYMENT:
                logger.info("order %s already %s, confirm is a no-op", order.id, order.status)
                return ConfirmResult(order=order, already_paid=True)

            patch = {
                "paid_at": utcnow(),
                "payment_provider": provider,
                "payment_ref": payment_ref,
                "download_token": new_download_token(),
                "download_token_expires_at": download_token_expiry(),
                "download_token_used": False,
            }
            if customer_email and not order.customer_email:
                patch["customer_email"] = customer_email

            try:
                order = self.repo.compare_and_set_status(
                    order.id, status, OrderStatus.PAID, patch
                )
            except Conflict:
                order = self.repo.get(order_id)
                continue

            self.dispatch(order.id)
            return ConfirmResult(order=order, dispatched=True)

        raise Conflict("Order changed concurrently")

    def confirm_manual(self, order_id: str, payment_ref: str | None = None) -> ConfirmResult:
        """Admin mark-paid. The caller has already checked the shared secret."""
        return self._confirm(order_id, provider="admin", payment_ref=payment_ref)

    def confirm_from_gateway(self, event: GatewayPayment) -> ConfirmResult:
        sid = event.external_session_id
        if not sid:
            raise InvalidArgument("Missing session id")

        fresh = self.events.record(
            sid,
            correlation_ref=event.correlation_ref,
            amount_cents=event.amount_cents,
            currency=event.currency,
            customer_email=event.customer_email,
        )
        if not fresh:
            logger.info("payment event %s already delivered", sid)
            return ConfirmResult(order=None, duplicate=True)

        try:
            if not event.correlation_ref:
                return self._reject_event(sid, "missing order reference")
            try:
                order = self.repo.get(event.correlation_ref)
            except NotFound:
                return self._reject_event(sid, "order not found")

            if order.status_enum in AWAITING_PAYMENT:
                if int(event.amount_cents or 0) != int(order.amount_cents):
                    return self._reject_event(sid, "amount mismatch", order)
                if event.currency and event.currency.upper() != order.currency.upper():
                    return self._reject_event(sid, "currency mismatch", order)

            result = self._confirm(
                order.id,
                provider="stripe",
                payment_ref=sid,
                customer_email=event.customer_email,
            )
            self.events.finish(sid, "processed")
            return result
        except Exception as e:
            # forget the delivery so the gateway retry is processed again
            self.db.rollback()
            self.events.discard(sid)
            if isinstance(e, ServiceError):
                raise
            logger.exception("payment event %s crashed", sid)
            raise Internal("Payment confirmation failed") from e

    def _reject_event(self, sid: str, reason: str, order: Order | None = None) -> ConfirmResult:
        logger.warning("payment event %s rejected: %s", sid, reason)
        self.events.finish(sid, "error", reason)
        return ConfirmResult(order=order, error=reason)

    # ---- admin operations ----

    def get_any(self, order_id: str) -> Order:
        return self.repo.get(order_id)

    def retry(self, order_id: str) -> Order:
        order = self.repo.get(order_id)
        status = order.status_enum

        if status == OrderStatus.PROCESSING:
            claimed_at = as_utc(order.claimed_at)
            cutoff = utcnow() - timedelta(minutes=self.settings.PROCESSING_STALE_MIN)
            if claimed_at and claimed_at > cutoff:
                raise Conflict("Order is still processing")
            order = self.repo.compare_and_set_status(
                order.id,
                OrderStatus.PROCESSING,
                OrderStatus.FAILED,
                {"failure_reason": "stale claim"},
            )
            status = OrderStatus.FAILED

        if status == OrderStatus.FAILED:
            order = self.repo.compare_and_set_status(
                order.id, OrderStatus.FAILED, OrderStatus.PAID
            )
        elif status != OrderStatus.PAID:
            raise InvalidState(f"Order cannot be retried (status={order.status})")

        logger.info("order %s retry requested", order.id)
        self.dispatch(order.id)
        return order

    def resend_notification(self, order_id: str) -> bool:
        order = self.repo.get(order_id)
        if order.status_enum != OrderStatus.READY:
            raise Conflict("Order not ready")
        if not order.customer_email:
            raise InvalidArgument("Order has no delivery email")
        result = self.services.pipeline.notify(self.repo, order)
        return bool(result and result.success)

    def list_orders(self, status: str, limit: int = 100) -> list[Order]:
        try:
            status_enum = OrderStatus(status)
        except ValueError:
            raise InvalidArgument("Unknown status")
        return self.repo.list_by_status(status_enum, limit)

    def list_stale(self, older_than_minutes: int | None = None) -> list[Order]:
        minutes = older_than_minutes or self.settings.PROCESSING_STALE_MIN
        return self.repo.list_stale_processing(utcnow() - timedelta(minutes=minutes))
