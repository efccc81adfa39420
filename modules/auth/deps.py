"""
Auth Module - Dependencies
===========================
FastAPI dependencies for the auth context. Identity is issued elsewhere;
this core only reads the bearer token and trusts its `sub` and `role` claims.
"""

from typing import Optional

from fastapi import Request, Depends, HTTPException, status

from common.helpers import safe_int
from common.security import decode_token


def get_token_payload(request: Request) -> Optional[dict]:
    """Decode the `Authorization: Bearer <jwt>` header. Returns payload or None."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return decode_token(token.strip())


def get_current_user_id(payload=Depends(get_token_payload)) -> int:
    """Require an authenticated caller. Raises 401 otherwise."""
    user_id = safe_int(payload.get("sub")) if payload else None
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login_required")
    return user_id


def require_admin(payload=Depends(get_token_payload), user_id: int = Depends(get_current_user_id)) -> int:
    """Only allow admin callers. Raises 403 otherwise."""
    if payload.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin_required")
    return user_id
