import contextvars
import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger("app.dispatcher")


class Dispatcher(ABC):
    """Runs background work outside the request/response lifecycle."""

    @abstractmethod
    def submit(self, fn: Callable, *args) -> None:
        ...

    def shutdown(self, wait: bool = True) -> None:
        pass


class ThreadPoolDispatcher(Dispatcher):
    def __init__(self, max_workers: int = 4):
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="pipeline"
        )

    def submit(self, fn: Callable, *args) -> None:
        # carry request_id into the worker's log records
        ctx = contextvars.copy_context()
        future = self._pool.submit(ctx.run, fn, *args)
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("background task crashed", exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)


class InlineDispatcher(Dispatcher):
    """Runs the task in the caller's thread. Used by tests and scripts."""

    def submit(self, fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("background task crashed")
