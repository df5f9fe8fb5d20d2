import logging

from sqlalchemy.orm import sessionmaker

from app.core.clock import utcnow
from app.core.errors import Conflict, NotFound
from app.core.logging import order_id_ctx
from app.models.order import Order, OrderStatus, Plan
from app.repositories.orders import OrderRepository
from app.services.notifier import Notifier, SendResult
from app.services.report import ReportGenerator
from app.services.storage import ArtifactStore, artifact_keys

logger = logging.getLogger("app.pipeline")


class FulfillmentPipeline:
    """
    Produces and publishes the artifacts of a paid order exactly once.

    claim (paid -> processing) -> generate -> store -> finalize (-> ready)
    -> notify. Only the invocation that wins the claim does any work, so
    run() may be called any number of times for the same order. Nothing
    escapes run(): failures end in the `failed` status.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        generator: ReportGenerator,
        store: ArtifactStore,
        notifier: Notifier,
        public_base_url: str = "",
    ):
        self.session_factory = session_factory
        self.generator = generator
        self.store = store
        self.notifier = notifier
        self.public_base_url = public_base_url.rstrip("/")

    def run(self, order_id: str) -> OrderStatus | None:
        token = order_id_ctx.set(order_id)
        try:
            with self.session_factory() as db:
                repo = OrderRepository(db)
                try:
                    return self._run(repo, order_id)
                except Exception:
                    logger.exception("pipeline crashed")
                    return self._fail(repo, order_id, "internal error")
        finally:
            order_id_ctx.reset(token)

    def _run(self, repo: OrderRepository, order_id: str) -> OrderStatus | None:
        try:
            order = repo.compare_and_set_status(
                order_id,
                OrderStatus.PAID,
                OrderStatus.PROCESSING,
                {"claimed_at": utcnow(), "failure_reason": None},
            )
        except (Conflict, NotFound) as e:
            # someone else holds the claim, or the order is not payable yet
            logger.info("pipeline skipped: %s", e.detail)
            return None

        try:
            report = self.generator.generate(order.query, Plan(order.plan))
        except Exception as e:
            logger.exception("report generation failed")
            return self._fail(repo, order_id, f"generate: {e}")

        keys = artifact_keys(order_id)
        try:
            document_url = self.store.put(report.document, keys["document"], "application/pdf")
            bundle_url = self.store.put(report.bundle, keys["bundle"], "application/zip")
        except Exception as e:
            logger.exception("artifact upload failed")
            return self._fail(repo, order_id, f"store: {e}")

        try:
            order = repo.compare_and_set_status(
                order_id,
                OrderStatus.PROCESSING,
                OrderStatus.READY,
                {
                    "document_url": document_url,
                    "bundle_url": bundle_url,
                    "ready_at": utcnow(),
                },
            )
        except Conflict as e:
            logger.error("finalize lost the claim: %s", e.detail)
            return self._fail(repo, order_id, "finalize conflict")

        logger.info("order ready")
        self.notify(repo, order)
        return OrderStatus.READY

    def _fail(self, repo: OrderRepository, order_id: str, reason: str) -> OrderStatus | None:
        try:
            repo.db.rollback()
            repo.compare_and_set_status(
                order_id,
                OrderStatus.PROCESSING,
                OrderStatus.FAILED,
                {"failure_reason": reason[:400]},
            )
        except (Conflict, NotFound) as e:
            logger.warning("could not mark order failed: %s", e.detail)
            return None
        except Exception:
            logger.exception("could not mark order failed")
            return None
        return OrderStatus.FAILED

    def absolute_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.public_base_url}{url}"

    def notify(self, repo: OrderRepository, order: Order) -> SendResult | None:
        """Best-effort delivery email. Never changes the order status."""
        if not order.customer_email or not order.document_url:
            return None

        link = self.absolute_url(order.document_url)
        try:
            result = self.notifier.send(order.customer_email, link, order.query)
        except Exception as e:
            logger.exception("notifier raised")
            result = SendResult.fail(self.notifier.provider_name, str(e))

        if not result.success:
            logger.warning("delivery email failed: %s", result.error)

        try:
            repo.record_notification(order.id, None if result.success else result.error or "send failed")
        except Exception:
            logger.exception("could not record notification outcome")
        return result
