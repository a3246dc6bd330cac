"""In-app notifications: records, display filtering and read/dismiss state."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import asyncpg

from fintrack.auth import AuthUser
from fintrack.db.models import NotificationPriority, Table
from fintrack.db.results import NOT_AUTHENTICATED, MutationResult

logger = logging.getLogger(__name__)

# Toasts are only raised for notifications this recent
TOAST_WINDOW = timedelta(minutes=5)
MAX_NEW_TOASTS = 3


@dataclass
class Notification:
    id: str
    type: str
    message: str
    priority: str = NotificationPriority.MEDIUM.value
    title: str = ""
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None

    @property
    def is_unread(self) -> bool:
        return self.read_at is None and self.dismissed_at is None


@dataclass(frozen=True)
class ToastDisplay:
    """How long a toast stays on screen; None means until closed."""

    auto_hide: bool
    duration_ms: Optional[int]


def unread(notifications: Iterable[Notification]) -> list[Notification]:
    """Notifications neither read nor dismissed, in their given order."""
    return [n for n in notifications if n.is_unread]


def select_new_toasts(
    notifications: Iterable[Notification],
    active_ids: Iterable[str],
    now: Optional[datetime] = None,
) -> list[Notification]:
    """
    Pick notifications to show as new toasts.

    Takes unread notifications not already on screen and created within
    the toast window, at most MAX_NEW_TOASTS of them.
    """
    now = now or datetime.now(timezone.utc)
    shown = set(active_ids)
    fresh = [
        n for n in unread(notifications)
        if n.id not in shown
        and n.created_at is not None
        and n.created_at > now - TOAST_WINDOW
    ]
    return fresh[:MAX_NEW_TOASTS]


def toast_display(priority: str) -> ToastDisplay:
    if priority == NotificationPriority.URGENT:
        return ToastDisplay(auto_hide=False, duration_ms=None)
    if priority == NotificationPriority.HIGH:
        return ToastDisplay(auto_hide=True, duration_ms=8000)
    return ToastDisplay(auto_hide=True, duration_ms=5000)


def _notification_from_row(row) -> Notification:
    return Notification(
        id=str(row["id"]),
        type=row["type"],
        title=row["title"],
        message=row["message"],
        priority=row["priority"],
        created_at=row["created_at"],
        read_at=row["read_at"],
        dismissed_at=row["dismissed_at"],
    )


class NotificationStore:
    """Notifications of one user, newest first."""

    def __init__(self, pool: asyncpg.Pool, user: Optional[AuthUser]):
        self._pool = pool
        self.user = user
        self.notifications: list[Notification] = []
        self.error: Optional[str] = None

    async def fetch(self, limit: int = 50) -> list[Notification]:
        if self.user is None:
            self.notifications = []
            return self.notifications

        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT id, type, title, message, priority, created_at, read_at, dismissed_at
                    FROM {Table.NOTIFICATIONS}
                    WHERE user_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    self.user.id,
                    limit,
                )
            self.notifications = [_notification_from_row(row) for row in rows]
            self.error = None
        except asyncpg.PostgresError as e:
            logger.error(f"Failed to load notifications for {self.user.id}: {e}")
            self.error = str(e)

        return self.notifications

    async def mark_read(self, notification_id: str) -> MutationResult[None]:
        return await self._stamp("read_at", [notification_id])

    async def dismiss(self, notification_id: str) -> MutationResult[None]:
        return await self._stamp("dismissed_at", [notification_id])

    async def dismiss_all(self) -> MutationResult[None]:
        """Dismiss every unread notification."""
        return await self._stamp("dismissed_at", [n.id for n in unread(self.notifications)])

    async def _stamp(self, column: str, ids: list[str]) -> MutationResult[None]:
        if self.user is None:
            return MutationResult(error=NOT_AUTHENTICATED)
        if not ids:
            return MutationResult()

        now = datetime.now(timezone.utc)
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    f"""
                    UPDATE {Table.NOTIFICATIONS}
                    SET {column} = $3
                    WHERE user_id = $1 AND id = ANY($2::uuid[]) AND {column} IS NULL
                    """,
                    self.user.id,
                    ids,
                    now,
                )
        except asyncpg.PostgresError as e:
            logger.warning(f"Failed to set {column} on notifications {ids}: {e}")
            self.error = str(e)
            return MutationResult(error=self.error)

        targets = set(ids)
        for n in self.notifications:
            if n.id in targets and getattr(n, column) is None:
                setattr(n, column, now)
        return MutationResult()
