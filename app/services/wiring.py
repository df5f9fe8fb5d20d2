from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.orm import sessionmaker

from app.core.config import Settings
from app.services.dispatcher import Dispatcher, ThreadPoolDispatcher
from app.services.notifier import ConsoleNotifier, Notifier, SESNotifier, make_ses_client
from app.services.pipeline import FulfillmentPipeline
from app.services.report import ReportGenerator
from app.services.storage import (
    ArtifactStore,
    LocalArtifactStore,
    S3ArtifactStore,
    make_s3_client,
)

STATIC_PREFIX = "/storage"


@dataclass
class Services:
    """Process-wide capabilities, built once at startup and passed explicitly."""

    session_factory: sessionmaker
    artifact_store: ArtifactStore
    proof_store: ArtifactStore
    notifier: Notifier
    generator: ReportGenerator
    dispatcher: Dispatcher
    pipeline: FulfillmentPipeline


def build_stores(settings: Settings) -> tuple[ArtifactStore, ArtifactStore]:
    if settings.storage_is_remote:
        if not settings.S3_BUCKET:
            raise RuntimeError("STORAGE_MODE=remote requires S3_BUCKET")
        client = make_s3_client(settings)
        artifacts = S3ArtifactStore(
            client, settings.S3_BUCKET, "artifacts", settings.SIGNED_URL_TTL_SECONDS
        )
        proofs = S3ArtifactStore(
            client, settings.S3_BUCKET, "proofs", settings.SIGNED_URL_TTL_SECONDS
        )
        return artifacts, proofs

    artifacts = LocalArtifactStore(Path(settings.STORAGE_LOCAL_DIR), base_url=STATIC_PREFIX)
    # proofs are never served statically
    proofs = LocalArtifactStore(Path(settings.PROOF_LOCAL_DIR))
    return artifacts, proofs


def build_notifier(settings: Settings) -> Notifier:
    if settings.NOTIFIER.lower() == "ses":
        return SESNotifier(make_ses_client(settings), settings.EMAIL_FROM)
    return ConsoleNotifier()


def build_services(settings: Settings, session_factory: sessionmaker) -> Services:
    artifact_store, proof_store = build_stores(settings)
    notifier = build_notifier(settings)
    generator = ReportGenerator()
    pipeline = FulfillmentPipeline(
        session_factory,
        generator,
        artifact_store,
        notifier,
        public_base_url=settings.PUBLIC_BASE_URL,
    )
    return Services(
        session_factory=session_factory,
        artifact_store=artifact_store,
        proof_store=proof_store,
        notifier=notifier,
        generator=generator,
        dispatcher=ThreadPoolDispatcher(settings.PIPELINE_WORKERS),
        pipeline=pipeline,
    )
