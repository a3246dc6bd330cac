"""Lightweight table-name constants and column-value enums."""

from enum import Enum


# Table name constants
class Table:
    """Database table names."""

    EXPENSES = "expenses"
    USER_PROFILES = "user_profiles"
    SUBSCRIPTIONS = "subscriptions"
    NOTIFICATIONS = "notifications"
    SCHEMA_MIGRATIONS = "schema_migrations"


# Column value enums
class SubscriptionStatus(str, Enum):
    """Subscription status, as reported by Stripe."""

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


class NotificationType(str, Enum):
    """Notification and email template type."""

    EXPENSE_ADDED = "expense_added"
    BUDGET_ALERT = "budget_alert"
    SPENDING_SUMMARY = "spending_summary"
    SECURITY_ALERT = "security_alert"
    SUBSCRIPTION_UPDATE = "subscription_update"


class NotificationPriority(str, Enum):
    """Notification priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
