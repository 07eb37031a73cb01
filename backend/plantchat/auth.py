# backend/plantchat/auth.py
"""
Bearer token handling for REST and WebSocket callers.

Tokens are HS256 JWTs carrying {sub, type, email}. The token is verified
once: per request on REST, at the handshake on the live channel.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Mapping, Optional, cast

import jwt
from jwt import PyJWTError

from .core.config import settings
from .core.enums import IdentityType
from .core.exceptions import TransportAuthException
from .domain import Identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Identity resolved from a verified token."""

    identity: Identity
    email: Optional[str] = None

    @property
    def id(self) -> str:
        return self.identity.id

    @property
    def type(self) -> IdentityType:
        return self.identity.type


def _secret_value(secret_obj: Any) -> str:
    getter = getattr(secret_obj, "get_secret_value", None)
    if callable(getter):
        return cast(str, getter())
    return cast(str, secret_obj)


def create_access_token(
    subject: str,
    identity_type: IdentityType,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: Consumer, owner or admin id
        identity_type: Which kind of caller the subject is
        email: Optional email claim
        expires_delta: Optional expiration time delta

    Returns:
        str: The encoded JWT token
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode: Dict[str, Any] = {"sub": subject, "type": identity_type.value, "exp": expire}
    if email:
        to_encode["email"] = email

    return cast(
        str,
        jwt.encode(to_encode, _secret_value(settings.secret_key), algorithm=settings.algorithm),
    )


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT access token (raises PyJWTError on failure)."""
    payload_raw = jwt.decode(
        token,
        _secret_value(settings.secret_key),
        algorithms=[settings.algorithm],
        options={"verify_aud": False},
    )
    return cast(Dict[str, Any], payload_raw)


def authenticate_token(token: Optional[str]) -> AuthenticatedIdentity:
    """
    Resolve a bearer token to an identity.

    Raises:
        TransportAuthException: token missing, invalid, expired, or with unknown claims
    """
    if not token:
        raise TransportAuthException("Missing bearer token")
    try:
        payload = decode_access_token(token)
    except PyJWTError as e:
        logger.info(f"[AUTH] Token rejected: {type(e).__name__}")
        raise TransportAuthException("Invalid or expired token") from e

    subject = payload.get("sub")
    raw_type = payload.get("type")
    if not isinstance(subject, str) or not subject:
        raise TransportAuthException("Token has no subject")
    try:
        identity_type = IdentityType(raw_type)
    except ValueError as e:
        raise TransportAuthException("Token has an unknown identity type") from e

    email = payload.get("email")
    return AuthenticatedIdentity(
        identity=Identity(identity_type, subject),
        email=email if isinstance(email, str) else None,
    )


def extract_bearer_token(
    query_params: Mapping[str, str], headers: Mapping[str, str]
) -> Optional[str]:
    """Token from the ``token`` query parameter, else from ``Authorization: Bearer``."""
    token = query_params.get("token")
    if token:
        return token
    authorization = headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None
