import time
from typing import Optional, Dict, Any

import jwt
from flask import current_app

SYSTEM_SCOPE = "system"


def _secret() -> str:
    try:
        return current_app.config.get("SECRET_KEY") or "dev-secret-change-me"
    except RuntimeError:
        return "dev-secret-change-me"


def create_system_token(caller: str, ttl_seconds: int = 60 * 60) -> str:
    """Token for collaborator services (course, sheet, quiz backends) calling the ledger."""
    now = int(time.time())
    payload = {
        "sub": str(caller),
        "iat": now,
        "exp": now + ttl_seconds,
        "scope": SYSTEM_SCOPE,
    }
    return jwt.encode(payload, _secret(), algorithm="HS256")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, _secret(), algorithms=["HS256"])
        return payload
    except Exception:
        return None


def get_bearer_token(auth_header: str) -> Optional[str]:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def is_system_caller(auth_header: str) -> bool:
    token = get_bearer_token(auth_header)
    if not token:
        return False
    payload = decode_token(token)
    if not payload:
        return False
    return payload.get("scope") == SYSTEM_SCOPE
