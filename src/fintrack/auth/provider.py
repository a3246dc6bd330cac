"""Caller authentication against the Supabase auth API."""

import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from fintrack.config import get_config

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when a caller cannot be authenticated."""


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user as returned by the auth provider."""

    id: str
    email: Optional[str] = None


def parse_bearer(header: Optional[str]) -> str:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthError: If the header is missing, uses another scheme or is empty
    """
    if not header:
        raise AuthError("Authorization header is required")

    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header must be a bearer token")

    return token.strip()


async def get_user(token: str) -> AuthUser:
    """
    Resolve the user that owns an access token.

    Calls ``GET {supabase_url}/auth/v1/user`` with the token and the
    project API key.

    Args:
        token: User access token (JWT)

    Returns:
        AuthUser for the token's owner

    Raises:
        AuthError: If the token is rejected or the response has no user id
        ValueError: If Supabase is not configured
        aiohttp.ClientError: On transport errors
        asyncio.TimeoutError: If the auth provider does not answer in time
    """
    config = get_config()

    api_key = (
        config.supabase_service_role_key.get_secret_value()
        or config.supabase_anon_key.get_secret_value()
    )
    if not config.supabase_url or not api_key:
        raise ValueError("supabase_url and a Supabase API key must be configured")

    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": api_key,
    }

    timeout = aiohttp.ClientTimeout(total=config.http_timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(f"{config.supabase_url}/auth/v1/user", headers=headers) as response:
            if response.status in (401, 403):
                raise AuthError("Invalid or expired access token")
            response.raise_for_status()
            data = await response.json()

    user_id = data.get("id") if isinstance(data, dict) else None
    if not user_id:
        raise AuthError("Auth provider returned no user")

    logger.debug(f"Authenticated user {user_id}")
    return AuthUser(id=user_id, email=data.get("email"))
