import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("app.errors")


class ServiceError(Exception):
    """Base for errors raised by the order service and repository.

    Each subclass maps onto one HTTP status so routers never translate them.
    """

    status_code = 500
    default_detail = "Internal Server Error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidArgument(ServiceError):
    status_code = 400
    default_detail = "Invalid argument"


class Forbidden(ServiceError):
    status_code = 403
    default_detail = "Forbidden"


class NotFound(ServiceError):
    status_code = 404
    default_detail = "Not found"


class InvalidState(ServiceError):
    status_code = 409
    default_detail = "Invalid order state"


class Conflict(ServiceError):
    status_code = 409
    default_detail = "Conflict"


class DependencyFailure(ServiceError):
    status_code = 502
    default_detail = "Upstream dependency failed"


class Internal(ServiceError):
    status_code = 500
    default_detail = "Internal Server Error"


def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Safe to return exc.detail (it’s intended for clients), but don’t log secrets.
    logger.info("HTTPException %s path=%s", exc.status_code, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s path=%s: %s", type(exc).__name__, request.url.path, exc.detail)
    else:
        logger.info("%s %s path=%s", type(exc).__name__, exc.status_code, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("ValidationError path=%s", request.url.path)
    return JSONResponse(status_code=422, content={"detail": "Invalid request"})


def unhandled_exception_handler(request: Request, exc: Exception):
    # Log stack trace server-side, but return generic message client-side.
    logger.exception("UnhandledException path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
