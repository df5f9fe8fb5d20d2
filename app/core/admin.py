from fastapi import HTTPException, Request, status

from app.core.security import admin_key_matches

ADMIN_HEADER = "x-admin-key"


def require_admin(request: Request) -> None:
    auth = request.headers.get("authorization") or ""
    key = auth[7:].strip() if auth.lower().startswith("bearer ") else None
    key = key or request.headers.get(ADMIN_HEADER)
    if not admin_key_matches(key):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
