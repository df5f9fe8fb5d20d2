import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.routers.orders import router as orders_router
from app.routers.admin import router as admin_router
from app.routers.webhooks import router as webhooks_router
from app.routers.stripe_checkout import router as stripe_router

from app.core.config import settings
from app.core.logging import configure_logging, new_request_id, request_id_ctx
from app.core.errors import (
    ServiceError,
    http_exception_handler,
    service_error_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)
from app.db.session import SessionLocal, engine, init_db
from app.services.storage import LocalArtifactStore
from app.services.wiring import STATIC_PREFIX, Services, build_services

configure_logging()
logger = logging.getLogger("app")


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or new_request_id()
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
            response.headers["x-request-id"] = rid
            return response
        finally:
            request_id_ctx.reset(token)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "services", None) is None:
        init_db(engine)
        app.state.services = build_services(settings, SessionLocal)
        logger.info(
            "services ready storage=%s notifier=%s",
            settings.STORAGE_MODE,
            settings.NOTIFIER,
        )
    try:
        yield
    finally:
        # let claimed pipeline runs reach ready/failed before exit
        app.state.services.dispatcher.shutdown(wait=True)


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(title="Report Orders API", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(orders_router)
    app.include_router(admin_router)
    app.include_router(webhooks_router)
    app.include_router(stripe_router)

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # local storage mode: artifacts are plain static files
    if services is not None and isinstance(services.artifact_store, LocalArtifactStore):
        app.mount(STATIC_PREFIX, StaticFiles(directory=services.artifact_store.root), name="storage")
    elif services is None and not settings.storage_is_remote:
        Path(settings.STORAGE_LOCAL_DIR).mkdir(parents=True, exist_ok=True)
        app.mount(STATIC_PREFIX, StaticFiles(directory=settings.STORAGE_LOCAL_DIR), name="storage")

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/")
    def root():
        return {"status": "ok", "docs": "/docs"}

    return app


app = create_app()
