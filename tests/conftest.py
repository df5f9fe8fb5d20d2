import os
import tempfile
import threading

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("JWT_ISSUER", "report-orders-test")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STORAGE_LOCAL_DIR", tempfile.mkdtemp(prefix="report-orders-storage-"))
os.environ.setdefault("PROOF_LOCAL_DIR", tempfile.mkdtemp(prefix="report-orders-proofs-"))

from app.db.session import get_db, init_db, make_engine, make_session_factory  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models.order import Plan  # noqa: E402
from app.repositories.orders import OrderRepository  # noqa: E402
from app.services.dispatcher import InlineDispatcher  # noqa: E402
from app.services.notifier import ConsoleNotifier, SendResult  # noqa: E402
from app.services.orders import OrderService  # noqa: E402
from app.services.pipeline import FulfillmentPipeline  # noqa: E402
from app.services.report import ReportGenerator  # noqa: E402
from app.services.storage import LocalArtifactStore  # noqa: E402
from app.services.wiring import STATIC_PREFIX, Services  # noqa: E402

ADMIN_KEY = os.environ["ADMIN_API_KEY"]


class CountingGenerator(ReportGenerator):
    """Real generator that counts calls per order query; can be told to fail."""

    def __init__(self):
        self.calls: dict[str, int] = {}
        self.fail_with: Exception | None = None
        self._lock = threading.Lock()

    def generate(self, query: str, plan: Plan):
        with self._lock:
            self.calls[query] = self.calls.get(query, 0) + 1
        if self.fail_with is not None:
            raise self.fail_with
        return super().generate(query, plan)


class RecordingNotifier(ConsoleNotifier):
    provider_name = "recording"

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, to_address: str, link: str, subject_context: str) -> SendResult:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((to_address, link, subject_context))
        return SendResult.ok(self.provider_name, "msg-1")


class QueueDispatcher(InlineDispatcher):
    """Collects submitted tasks so a test decides when they run."""

    def __init__(self):
        self.tasks: list[tuple] = []

    def submit(self, fn, *args) -> None:
        self.tasks.append((fn, args))

    def run_all(self) -> None:
        tasks, self.tasks = self.tasks, []
        for fn, args in tasks:
            fn(*args)


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repo(db):
    return OrderRepository(db)


@pytest.fixture
def generator():
    return CountingGenerator()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def artifact_store(tmp_path):
    return LocalArtifactStore(tmp_path / "artifacts", base_url=STATIC_PREFIX)


@pytest.fixture
def proof_store(tmp_path):
    return LocalArtifactStore(tmp_path / "proofs")


@pytest.fixture
def pipeline(session_factory, generator, artifact_store, notifier):
    return FulfillmentPipeline(
        session_factory,
        generator,
        artifact_store,
        notifier,
        public_base_url="https://reports.example",
    )


@pytest.fixture
def dispatcher():
    return InlineDispatcher()


@pytest.fixture
def services(session_factory, artifact_store, proof_store, notifier, generator, dispatcher, pipeline):
    return Services(
        session_factory=session_factory,
        artifact_store=artifact_store,
        proof_store=proof_store,
        notifier=notifier,
        generator=generator,
        dispatcher=dispatcher,
        pipeline=pipeline,
    )


@pytest.fixture
def service(db, services):
    return OrderService(db, services)


@pytest.fixture
def client(services, session_factory):
    from fastapi.testclient import TestClient

    app = create_app(services)

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c


def owner(user_id: str) -> dict:
    return {"x-user-id": user_id}


def admin(key: str = ADMIN_KEY) -> dict:
    return {"Authorization": f"Bearer {key}"}
