"""Admin guards for the call-inspection endpoints.

Both guards share one decision (``admin_access``):

  ADMIN_API_KEY set, token matches      allowed
  ADMIN_API_KEY set, token wrong/absent 401, WebSocket close 4001
  ADMIN_API_KEY empty, DEBUG=true       allowed (local development)
  ADMIN_API_KEY empty, DEBUG=false      403, WebSocket close 4003

HTTP endpoints take a bearer token; the events WebSocket takes ``?token=``.
The provider webhook is not guarded: the provider cannot send headers.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Query, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from jobline.config import settings

log = logging.getLogger("jobline.auth")

_bearer_scheme = HTTPBearer(auto_error=False)

_WS_CLOSE_CODES = {
    status.HTTP_401_UNAUTHORIZED: (4001, "Unauthorized"),
    status.HTTP_403_FORBIDDEN: (4003, "Admin API key not configured"),
}


def admin_access(token: Optional[str]) -> Optional[int]:
    """Return None when ``token`` grants admin access, else the HTTP status."""
    key = settings.admin_api_key
    if not key:
        return None if settings.debug else status.HTTP_403_FORBIDDEN
    if token is None or not secrets.compare_digest(token.encode("utf-8"), key.encode("utf-8")):
        log.warning("Rejected admin access with a missing or invalid token")
        return status.HTTP_401_UNAUTHORIZED
    return None


async def require_admin_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> None:
    """Dependency for HTTP admin endpoints."""
    denied = admin_access(credentials.credentials if credentials else None)
    if denied == status.HTTP_403_FORBIDDEN:
        raise HTTPException(
            status_code=denied,
            detail="Admin API key not configured. Set ADMIN_API_KEY in .env.",
        )
    if denied is not None:
        raise HTTPException(
            status_code=denied,
            detail="Invalid or missing admin token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin_ws(
    websocket: WebSocket,
    token: str = Query(default=""),
) -> None:
    """Guard for the events WebSocket; closes the socket before raising."""
    denied = admin_access(token)
    if denied is None:
        return
    code, reason = _WS_CLOSE_CODES[denied]
    await websocket.close(code=code, reason=reason)
    raise HTTPException(status_code=denied)
