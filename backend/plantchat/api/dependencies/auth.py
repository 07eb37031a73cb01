# backend/plantchat/api/dependencies/auth.py
"""
Authentication dependencies.

REST callers send ``Authorization: Bearer <jwt>``; the same token format is
used on the WebSocket handshake.
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...auth import AuthenticatedIdentity, authenticate_token
from ...core.enums import IdentityType
from ...core.exceptions import ForbiddenException

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthenticatedIdentity:
    """Resolve the caller; raises TransportAuthException (401) on a bad token."""
    token = credentials.credentials if credentials else None
    return authenticate_token(token)


async def require_consumer(
    current: AuthenticatedIdentity = Depends(get_current_identity),
) -> AuthenticatedIdentity:
    if current.type is not IdentityType.CONSUMER:
        raise ForbiddenException("Only consumers can start conversations")
    return current
