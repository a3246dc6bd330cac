"""Stripe subscription billing.

Handles checkout and billing-portal session creation, webhook processing
and subscription state sync into the subscriptions table.
"""

from fintrack.payments.checkout import create_checkout_url, handle_checkout, handle_portal
from fintrack.payments.sync import SubscriptionRecord, fetch_subscription
from fintrack.payments.webhooks import handle_webhook

__all__ = [
    "SubscriptionRecord",
    "create_checkout_url",
    "fetch_subscription",
    "handle_checkout",
    "handle_portal",
    "handle_webhook",
]
