import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt

from app.core.config import settings

ALGO = "HS256"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_download_token() -> str:
    return secrets.token_urlsafe(32)


def download_token_expiry(now: datetime | None = None) -> datetime:
    return (now or _now()) + timedelta(minutes=settings.DOWNLOAD_TOKEN_TTL_MIN)


def make_access_token(owner_id: str, ttl_min: int = 15) -> str:
    exp = _now() + timedelta(minutes=ttl_min)
    payload: dict[str, Any] = {
        "iss": settings.JWT_ISSUER,
        "sub": owner_id,
        "type": "access",
        "exp": exp,
        "iat": _now(),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGO)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(
        token, settings.JWT_SECRET, algorithms=[ALGO], issuer=settings.JWT_ISSUER
    )


def admin_key_matches(candidate: str | None) -> bool:
    expected = settings.ADMIN_API_KEY
    if not expected or not candidate:
        return False
    return secrets.compare_digest(candidate.encode(), expected.encode())
