"""
Auth — Resolves the calling user before any character operation runs.

Identity comes from either:
  - Authorization: Bearer <token>, looked up in Settings.api_tokens
  - X-User-Id, only when Settings.trust_user_header is on (an upstream
    proxy has already authenticated the user)

Anything else is a 401. The store is never reached without an owner id.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

logger = logging.getLogger("Auth")


def resolve_owner(
    settings,
    authorization: Optional[str],
    user_header: Optional[str],
) -> Optional[str]:
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            owner = settings.api_tokens.get(token.strip())
            if owner:
                return owner
    if settings.trust_user_header and user_header and user_header.strip():
        return user_header.strip()
    return None


async def get_owner_id(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> str:
    """FastAPI dependency: the authenticated user's id, or 401."""
    owner = resolve_owner(request.app.state.settings, authorization, x_user_id)
    if owner is None:
        logger.warning(f"Rejected unauthenticated request: {request.method} {request.url.path}")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return owner
