"""Stripe Checkout and billing-portal session handlers."""

import json
import logging
from typing import Optional

import stripe
from aiohttp import web

from fintrack.auth import AuthError, AuthUser, get_user, parse_bearer
from fintrack.config import get_config
from fintrack.payments.sync import find_customer_id

logger = logging.getLogger(__name__)


def cors_headers() -> dict[str, str]:
    """CORS headers for browser-facing handlers."""
    return {
        "Access-Control-Allow-Origin": get_config().cors_allow_origin,
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def json_response(body: dict, status: int = 200) -> web.Response:
    return web.json_response(body, status=status, headers=cors_headers())


def create_checkout_url(price_id: str, user: AuthUser, origin: str) -> str:
    """Create a Stripe Checkout Session for a subscription purchase.

    The user id is attached as client_reference_id and as metadata on both
    the session and the resulting subscription, so webhook events can be
    linked back to the user.

    Args:
        price_id: Stripe price identifier of the plan
        user: Authenticated purchaser
        origin: Site origin used to build success and cancel URLs

    Returns:
        Stripe-hosted checkout URL

    Raises:
        stripe.StripeError: On Stripe API errors
        ValueError: If the Stripe secret is not configured
    """
    config = get_config()

    if not config.stripe_secret_key.get_secret_value():
        raise ValueError("stripe_secret_key not configured")

    stripe.api_key = config.stripe_secret_key.get_secret_value()

    params = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "client_reference_id": user.id,
        "metadata": {"user_id": user.id},
        "subscription_data": {"metadata": {"user_id": user.id}},
        "billing_address_collection": "required",
        "success_url": f"{origin}/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{origin}/pricing",
    }
    if user.email:
        params["customer_email"] = user.email

    session = stripe.checkout.Session.create(**params)

    logger.info(f"Created checkout session {session.id} for user {user.id}")

    return session.url


def create_portal_url(customer_id: str, origin: str) -> str:
    """Create a Stripe billing portal session returning to the pricing page."""
    config = get_config()

    if not config.stripe_secret_key.get_secret_value():
        raise ValueError("stripe_secret_key not configured")

    stripe.api_key = config.stripe_secret_key.get_secret_value()

    session = stripe.billing_portal.Session.create(
        customer=customer_id,
        return_url=f"{origin}/pricing",
    )

    logger.info(f"Created billing portal session for customer {customer_id}")

    return session.url


async def handle_checkout(
    payload: bytes,
    authorization: Optional[str],
    origin: Optional[str] = None,
) -> web.Response:
    """Handle a checkout request: ``{priceId}`` in, ``{url}`` or ``{error}`` out.

    Every failure is reported as HTTP 400 with an error message. The
    payment provider is only called once the caller is authenticated.
    """
    config = get_config()

    try:
        _require_provider_config()

        price_id = _parse_body(payload).get("priceId")
        if not price_id or not isinstance(price_id, str):
            raise ValueError("Price ID is required")

        user = await get_user(parse_bearer(authorization))
        url = create_checkout_url(price_id, user, origin or config.default_origin)
    except Exception as e:
        return _error_response("Checkout session error", e, "Failed to create checkout session")

    return json_response({"url": url})


async def handle_portal(
    authorization: Optional[str],
    origin: Optional[str] = None,
) -> web.Response:
    """Handle a billing-portal request for the calling user's Stripe customer."""
    config = get_config()

    try:
        _require_provider_config()

        user = await get_user(parse_bearer(authorization))
        customer_id = await find_customer_id(user.id)
        if not customer_id:
            raise ValueError("No billing account found for user")

        url = create_portal_url(customer_id, origin or config.default_origin)
    except Exception as e:
        return _error_response("Portal session error", e, "Failed to create portal session")

    return json_response({"url": url})


def _require_provider_config() -> None:
    config = get_config()
    if not config.stripe_secret_key.get_secret_value():
        raise ValueError("STRIPE_SECRET_KEY environment variable is not set")
    if not config.supabase_url or not (
        config.supabase_service_role_key.get_secret_value()
        or config.supabase_anon_key.get_secret_value()
    ):
        raise ValueError("Supabase environment variables are not set")


def _parse_body(payload: bytes) -> dict:
    try:
        body = json.loads(payload or b"{}")
    except json.JSONDecodeError as e:
        raise ValueError("Request body must be JSON") from e
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def _error_response(context: str, error: Exception, fallback: str) -> web.Response:
    if isinstance(error, (AuthError, ValueError)):
        logger.warning(f"{context}: {error}")
    else:
        logger.exception(f"{context}: {error}")

    if isinstance(error, stripe.StripeError):
        message = error.user_message or str(error) or fallback
    else:
        message = str(error) or fallback

    return json_response({"error": message}, status=400)
