"""Subscription row persistence for webhook events and client reads."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fintrack.db.models import SubscriptionStatus, Table
from fintrack.db.pool import get_pool

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionRecord:
    """One row of the subscriptions table, keyed by Stripe subscription id."""

    id: str
    user_id: Optional[str]
    status: str
    plan_name: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


_COLUMNS = (
    "id, user_id, status, plan_name, stripe_customer_id, "
    "current_period_start, current_period_end, cancel_at_period_end, updated_at"
)


def _record_from_row(row) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=row["id"],
        user_id=str(row["user_id"]) if row["user_id"] is not None else None,
        status=row["status"],
        plan_name=row["plan_name"],
        stripe_customer_id=row["stripe_customer_id"],
        current_period_start=row["current_period_start"],
        current_period_end=row["current_period_end"],
        cancel_at_period_end=row["cancel_at_period_end"],
        updated_at=row["updated_at"],
    )


async def upsert_subscription(record: SubscriptionRecord) -> None:
    """
    Insert or replace a subscription row.

    A row already marked ``canceled`` is left untouched: Stripe never
    reactivates a canceled subscription, so any later write for it comes
    from an event delivered out of order.

    Raises:
        ValueError: If the record has no user id
        asyncpg.PostgresError: On database errors
    """
    if not record.user_id:
        raise ValueError(f"Subscription {record.id} has no user_id")

    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            f"""
            INSERT INTO {Table.SUBSCRIPTIONS}
                (id, user_id, stripe_customer_id, status, plan_name,
                 current_period_start, current_period_end, cancel_at_period_end)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (id) DO UPDATE SET
                user_id = EXCLUDED.user_id,
                stripe_customer_id = COALESCE(EXCLUDED.stripe_customer_id, {Table.SUBSCRIPTIONS}.stripe_customer_id),
                status = EXCLUDED.status,
                plan_name = COALESCE(EXCLUDED.plan_name, {Table.SUBSCRIPTIONS}.plan_name),
                current_period_start = EXCLUDED.current_period_start,
                current_period_end = EXCLUDED.current_period_end,
                cancel_at_period_end = EXCLUDED.cancel_at_period_end,
                updated_at = now()
            WHERE {Table.SUBSCRIPTIONS}.status <> 'canceled'
            """,
            record.id,
            record.user_id,
            record.stripe_customer_id,
            record.status,
            record.plan_name,
            record.current_period_start,
            record.current_period_end,
            record.cancel_at_period_end,
        )

    logger.info(
        f"Upserted subscription {record.id} for user {record.user_id}: "
        f"status={record.status}, plan={record.plan_name}"
    )


async def update_subscription(record: SubscriptionRecord) -> bool:
    """
    Refresh status, plan and period fields of an existing row.

    Returns:
        bool: True if a row was updated; False if the subscription is
        unknown or already canceled
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            f"""
            UPDATE {Table.SUBSCRIPTIONS} SET
                status = $2,
                plan_name = COALESCE($3, plan_name),
                current_period_start = $4,
                current_period_end = $5,
                cancel_at_period_end = $6,
                updated_at = now()
            WHERE id = $1 AND status <> 'canceled'
            """,
            record.id,
            record.status,
            record.plan_name,
            record.current_period_start,
            record.current_period_end,
            record.cancel_at_period_end,
        )

    updated = _rows_affected(result) > 0
    if updated:
        logger.info(f"Updated subscription {record.id}: status={record.status}")
    else:
        logger.warning(f"Subscription {record.id} not updated (unknown or canceled)")
    return updated


async def mark_subscription_status(subscription_id: str, status: str) -> bool:
    """
    Set only the status of a subscription row.

    Moving to ``canceled`` always applies; any other status leaves a
    canceled row as it is.
    """
    guard = "" if status == SubscriptionStatus.CANCELED else " AND status <> 'canceled'"

    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            f"""
            UPDATE {Table.SUBSCRIPTIONS}
            SET status = $2, updated_at = now()
            WHERE id = $1{guard}
            """,
            subscription_id,
            status,
        )

    updated = _rows_affected(result) > 0
    logger.info(
        f"Marked subscription {subscription_id} {status}"
        + ("" if updated else " (no matching row)")
    )
    return updated


async def fetch_subscription(user_id: str) -> Optional[SubscriptionRecord]:
    """Return the user's most recently updated subscription, if any."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"""
            SELECT {_COLUMNS}
            FROM {Table.SUBSCRIPTIONS}
            WHERE user_id = $1
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            user_id,
        )
    return _record_from_row(row) if row else None


async def find_customer_id(user_id: str) -> Optional[str]:
    """Return the Stripe customer id recorded for a user, if any."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        return await conn.fetchval(
            f"""
            SELECT stripe_customer_id
            FROM {Table.SUBSCRIPTIONS}
            WHERE user_id = $1 AND stripe_customer_id IS NOT NULL
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            user_id,
        )


def _rows_affected(status: object) -> int:
    """Parse the row count from an asyncpg command tag such as ``UPDATE 1``."""
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except ValueError:
        return 0
