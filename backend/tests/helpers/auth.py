"""Token helpers for HTTP and WebSocket tests."""

from typing import Dict

from plantchat.auth import create_access_token
from plantchat.domain import Identity


def token_for(identity: Identity) -> str:
    return create_access_token(identity.id, identity.type, email=f"{identity.id}@example.com")


def auth_headers(identity: Identity) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(identity)}"}
