from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import decode_token
from app.db.session import get_db
from app.services.orders import OrderService
from app.services.wiring import Services

ACCESS_COOKIE = "access_token"
DEV_OWNER_HEADER = "x-user-id"


def _bearer(request: Request) -> str | None:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


def get_current_owner(request: Request) -> str:
    token = _bearer(request) or request.cookies.get(ACCESS_COOKIE)
    if not token:
        # development convenience; production requires a signed token
        dev_owner = request.headers.get(DEV_OWNER_HEADER)
        if dev_owner and not settings.is_prod:
            return dev_owner
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
        )

    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token"
        )

    if payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token"
        )

    return str(payload["sub"])


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_order_service(
    db: Session = Depends(get_db), services: Services = Depends(get_services)
) -> OrderService:
    return OrderService(db, services)
