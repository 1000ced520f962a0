"""
API key authentication.

Each key slot ``API_KEY_USER<n>`` holds ``<key>:<backend-user-id>``.  A
plain key without a user id maps the slot name itself (``user1``) as the
user id, which is handy against a local backend seeded with those ids.
Slots listed in ``ADMIN_API_KEY_USERS`` may call ``/admin`` routes.
"""

from dataclasses import dataclass
import os
from typing import Dict, Optional

from dotenv import load_dotenv
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

# Load .env file
load_dotenv()

# API Key header
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

MAX_KEY_SLOTS = 5


@dataclass(frozen=True)
class ApiUser:
    slot: str
    user_id: str
    is_admin: bool = False


def _admin_slots() -> set:
    raw = os.getenv("ADMIN_API_KEY_USERS", "user1")
    return {s.strip() for s in raw.split(",") if s.strip()}


def get_valid_api_keys() -> Dict[str, ApiUser]:
    """Load valid API keys from environment variables"""
    admins = _admin_slots()
    keys: Dict[str, ApiUser] = {}

    for i in range(1, MAX_KEY_SLOTS + 1):
        raw = os.getenv(f"API_KEY_USER{i}")
        if not raw:
            continue
        slot = f"user{i}"
        key, _, user_id = raw.partition(":")
        keys[key] = ApiUser(slot=slot, user_id=user_id or slot, is_admin=slot in admins)

    if not keys:
        # Development fallback (never use in production)
        if os.getenv("ENVIRONMENT") == "development":
            keys["dev-key-insecure"] = ApiUser(
                slot="dev_user",
                user_id=os.getenv("DEV_USER_ID", "dev_user"),
                is_admin=True,
            )
        else:
            raise ValueError("No API keys configured! Set API_KEY_USER1 in environment")

    return keys


_valid_api_keys: Optional[Dict[str, ApiUser]] = None


def _keys() -> Dict[str, ApiUser]:
    global _valid_api_keys
    if _valid_api_keys is None:
        _valid_api_keys = get_valid_api_keys()
    return _valid_api_keys


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> ApiUser:
    """
    Verify API key and return the caller

    Usage in FastAPI routes:
        @app.get("/protected")
        async def protected_route(caller: ApiUser = Depends(verify_api_key)):
            return {"user": caller.user_id}
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Include 'X-API-Key' header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    caller = _keys().get(api_key)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return caller


async def verify_admin_api_key(caller: ApiUser = Security(verify_api_key)) -> ApiUser:
    """Admin-only routes"""
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return caller
