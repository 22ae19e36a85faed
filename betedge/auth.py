"""
X-API-Key authentication for the BetEdge API.

Analysts get keys through ``API_KEY_USER1`` … ``API_KEY_USER5``.  Analysis,
bankroll, CLV and alert-inbox routes accept any of them; clearing the alert
store and the dispatcher / odds-monitor / scheduler status routes need the
admin user (``BETEDGE_ADMIN_USER``, default ``user1``).

Keys are read from the environment on each request, so rotating a key
needs no restart.
"""

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
import hmac
import os
from typing import Dict, Optional
from dotenv import load_dotenv

load_dotenv()

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

MAX_API_USERS = 5
DEV_API_KEY = "dev-key-insecure"


def admin_user() -> str:
    return os.getenv("BETEDGE_ADMIN_USER", "user1")


def get_valid_api_keys() -> Dict[str, str]:
    """
    Map of API key → user id.

    Raises:
        ValueError: If no key is configured outside ``ENVIRONMENT=development``.
    """
    keys = {}
    for i in range(1, MAX_API_USERS + 1):
        key = os.getenv(f"API_KEY_USER{i}")
        if key:
            keys[key] = f"user{i}"

    if not keys:
        # Development fallback (never use in production)
        if os.getenv("ENVIRONMENT") == "development":
            keys[DEV_API_KEY] = "dev_user"
        else:
            raise ValueError("No API keys configured! Set API_KEY_USER1 in environment")

    return keys


def _lookup(api_key: str, valid_keys: Dict[str, str]) -> Optional[str]:
    # Compare every key so response time does not depend on which one matched
    found = None
    for key, user in valid_keys.items():
        if hmac.compare_digest(key.encode(), api_key.encode()):
            found = user
    return found


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """
    Resolve the caller's user id from the ``X-API-Key`` header.

    401 when the header is missing or unknown, 503 when the server has no
    keys configured at all.
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Include 'X-API-Key' header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    try:
        valid_keys = get_valid_api_keys()
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )

    user = _lookup(api_key, valid_keys)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return user


async def verify_admin_api_key(user: str = Security(verify_api_key)) -> str:
    """Alert-store maintenance and status routes."""
    if user != admin_user():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )

    return user
