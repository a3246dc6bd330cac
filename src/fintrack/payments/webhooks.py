"""Stripe webhook verification and event processing."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe
from aiohttp import web

from fintrack.config import get_config
from fintrack.db.models import SubscriptionStatus
from fintrack.payments.sync import (
    SubscriptionRecord,
    mark_subscription_status,
    update_subscription,
    upsert_subscription,
)

logger = logging.getLogger(__name__)


async def handle_webhook(payload: bytes, sig_header: str) -> web.Response:
    """Verify a Stripe webhook delivery and apply it to the subscriptions table.

    Args:
        payload: Raw request body, exactly as received
        sig_header: Stripe-Signature header value

    Returns:
        aiohttp.web.Response: 200 when handled or ignored, 400 when the
        payload or signature is rejected, 500 when processing fails so that
        Stripe redelivers
    """
    config = get_config()

    try:
        event = stripe.Webhook.construct_event(
            payload,
            sig_header,
            config.stripe_webhook_secret.get_secret_value(),
        )
    except ValueError:
        logger.error("Invalid webhook payload")
        return web.Response(status=400, text="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.error("Invalid webhook signature")
        return web.Response(status=400, text="Invalid signature")

    event_type = event["type"]
    logger.info(f"Received webhook: {event_type}")

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        # Acknowledge so Stripe stops redelivering
        logger.info(f"Unhandled event type: {event_type}")
        return web.Response(status=200, text="OK")

    try:
        await handler(_as_dict(event["data"]["object"]))
    except Exception as e:
        logger.exception(f"Error processing webhook {event_type}: {e}")
        return web.Response(status=500, text="Webhook processing failed")

    return web.Response(status=200, text="OK")


async def _handle_checkout_completed(session: dict) -> None:
    """Create the subscription row for a completed checkout."""
    user_id = _as_dict(session.get("metadata")).get("user_id") or session.get("client_reference_id")
    if not user_id:
        logger.warning("checkout.session.completed missing user id - skipping")
        return

    subscription_id = session.get("subscription")
    if not subscription_id:
        logger.warning(f"checkout.session {session.get('id')} has no subscription - skipping")
        return

    _set_api_key()
    subscription = _as_dict(stripe.Subscription.retrieve(subscription_id))
    record = _record_from_subscription(subscription, user_id=user_id)
    if record.stripe_customer_id is None:
        record.stripe_customer_id = session.get("customer")

    await upsert_subscription(record)


async def _handle_subscription_updated(subscription: dict) -> None:
    """Sync status, plan and period from an updated subscription."""
    user_id = _as_dict(subscription.get("metadata")).get("user_id")
    _set_api_key()
    record = _record_from_subscription(subscription, user_id=user_id)

    if user_id:
        await upsert_subscription(record)
    else:
        await update_subscription(record)


async def _handle_subscription_deleted(subscription: dict) -> None:
    """Mark a deleted subscription as canceled."""
    await mark_subscription_status(subscription["id"], SubscriptionStatus.CANCELED.value)


async def _handle_invoice_payment_succeeded(invoice: dict) -> None:
    """Refresh the billing period after a successful renewal payment."""
    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        logger.warning(f"Invoice {invoice.get('id')} is not for a subscription - skipping")
        return

    _set_api_key()
    subscription = _as_dict(stripe.Subscription.retrieve(subscription_id))
    await update_subscription(_record_from_subscription(subscription, user_id=None))


async def _handle_invoice_payment_failed(invoice: dict) -> None:
    """Flag the subscription as past due after a failed payment."""
    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        logger.warning(f"Invoice {invoice.get('id')} is not for a subscription - skipping")
        return

    await mark_subscription_status(subscription_id, SubscriptionStatus.PAST_DUE.value)


EVENT_HANDLERS = {
    "checkout.session.completed": _handle_checkout_completed,
    "customer.subscription.updated": _handle_subscription_updated,
    "customer.subscription.deleted": _handle_subscription_deleted,
    "invoice.payment_succeeded": _handle_invoice_payment_succeeded,
    "invoice.payment_failed": _handle_invoice_payment_failed,
}


def _record_from_subscription(subscription: dict, user_id: Optional[str]) -> SubscriptionRecord:
    """Map a Stripe Subscription object onto a subscriptions row."""
    first_item = _first_item(subscription)

    # Newer API versions report the billing period on the subscription item
    period_start = subscription.get("current_period_start") or first_item.get("current_period_start")
    period_end = subscription.get("current_period_end") or first_item.get("current_period_end")

    customer = subscription.get("customer")
    if customer is not None and not isinstance(customer, str):
        customer = _as_dict(customer).get("id")

    return SubscriptionRecord(
        id=subscription["id"],
        user_id=user_id,
        status=subscription.get("status", SubscriptionStatus.ACTIVE.value),
        plan_name=_resolve_plan_name(first_item),
        stripe_customer_id=customer,
        current_period_start=_from_timestamp(period_start),
        current_period_end=_from_timestamp(period_end),
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end", False)),
    )


def _resolve_plan_name(item: dict) -> Optional[str]:
    """
    Look up the product name behind a subscription item's price.

    Returns None when the lookup fails; the stored plan name is then kept.
    """
    price = item.get("price")
    price_id = price if isinstance(price, str) or price is None else _as_dict(price).get("id")
    if not price_id:
        return None

    try:
        price_obj = _as_dict(stripe.Price.retrieve(price_id))
        product_id = price_obj.get("product")
        if product_id is not None and not isinstance(product_id, str):
            return _as_dict(product_id).get("name")
        if not product_id:
            return None

        product = _as_dict(stripe.Product.retrieve(product_id))
    except stripe.StripeError as e:
        logger.warning(f"Could not resolve plan name for price {price_id}: {e}")
        return None
    return product.get("name")


def _first_item(subscription: dict) -> dict:
    items = _as_dict(subscription.get("items")).get("data") or []
    return _as_dict(items[0]) if items else {}


def _invoice_subscription_id(invoice: dict) -> Optional[str]:
    """Subscription id of an invoice, across old and new API shapes."""
    subscription = invoice.get("subscription")
    if subscription is None:
        parent = _as_dict(invoice.get("parent"))
        subscription = _as_dict(parent.get("subscription_details")).get("subscription")
    if subscription is not None and not isinstance(subscription, str):
        return _as_dict(subscription).get("id")
    return subscription


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _as_dict(obj: Any) -> dict:
    """Return a Stripe object as a dict; recent SDKs no longer subclass dict."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _set_api_key() -> None:
    config = get_config()
    secret = config.stripe_secret_key.get_secret_value()
    if not secret:
        raise ValueError("stripe_secret_key not configured")
    stripe.api_key = secret
