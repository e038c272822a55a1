"""Simple JWT authentication helpers."""
from __future__ import annotations

from typing import Any, Dict

import jwt
from fastapi import Depends, Header, HTTPException, status

from streamsub.core.config import settings


def require_auth(authorization: str = Header(...)) -> Dict[str, Any]:
    """Validate a bearer token and return the caller identity."""

    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
        )

    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
        )
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc

    user_id = payload.get("sub") or payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User missing in token",
        )

    return {
        "user_id": str(user_id),
        "email": payload.get("email"),
        "role": payload.get("role", "user"),
        "claims": payload,
    }


def require_admin(auth: Dict[str, Any] = Depends(require_auth)) -> Dict[str, Any]:
    """Restrict an endpoint to tokens carrying the admin role."""

    if auth["role"] != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action",
        )
    return auth
