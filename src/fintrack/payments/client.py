"""Client-side calls to the checkout and billing-portal handlers."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from fintrack.config import get_config

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSessionResponse:
    """Redirect URL on success, error message otherwise."""

    url: Optional[str] = None
    error: Optional[str] = None


async def create_checkout_session(price_id: str, access_token: str) -> CheckoutSessionResponse:
    """Ask the checkout handler for a hosted checkout URL.

    Never raises; failures come back in ``error``.
    """
    return await _post_for_url(
        "create-checkout-session",
        access_token,
        {"priceId": price_id},
        "Failed to create checkout session",
    )


async def create_portal_session(access_token: str) -> CheckoutSessionResponse:
    """Ask the portal handler for a billing-portal URL."""
    return await _post_for_url(
        "create-portal-session",
        access_token,
        None,
        "Failed to create portal session",
    )


async def _post_for_url(
    function: str,
    access_token: str,
    body: Optional[dict],
    fallback: str,
) -> CheckoutSessionResponse:
    config = get_config()

    if not config.functions_url and not config.supabase_url:
        return CheckoutSessionResponse(error="Supabase environment variables are not configured")

    api_url = f"{config.functions_base_url()}/{function}"
    headers = {"Authorization": f"Bearer {access_token}"}
    timeout = aiohttp.ClientTimeout(total=config.http_timeout_seconds)

    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(api_url, json=body, headers=headers) as response:
                data = await response.json(content_type=None)
                if response.status >= 400:
                    message = data.get("error") if isinstance(data, dict) else None
                    logger.error(f"{function} failed with HTTP {response.status}: {message}")
                    return CheckoutSessionResponse(error=message or f"HTTP error {response.status}")
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.error(f"{function} request failed: {e}")
        return CheckoutSessionResponse(error=str(e) or fallback)

    if not isinstance(data, dict):
        return CheckoutSessionResponse(error=fallback)
    if data.get("error"):
        return CheckoutSessionResponse(error=data["error"])
    if not data.get("url"):
        return CheckoutSessionResponse(error=fallback)

    return CheckoutSessionResponse(url=data["url"])
