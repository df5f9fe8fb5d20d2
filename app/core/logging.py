import logging
import sys
import uuid
from contextvars import ContextVar

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
order_id_ctx: ContextVar[str] = ContextVar("order_id", default="-")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()
        record.order_id = order_id_ctx.get()
        return True


def configure_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        fmt=(
            "%(asctime)s %(levelname)s request_id=%(request_id)s "
            "order_id=%(order_id)s %(name)s: %(message)s"
        )
    )
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())

    root.handlers.clear()
    root.addHandler(handler)


def new_request_id() -> str:
    return uuid.uuid4().hex[:16]
