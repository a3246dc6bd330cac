"""In-app and email notifications."""

from fintrack.notifications.center import (
    Notification,
    NotificationStore,
    ToastDisplay,
    select_new_toasts,
    toast_display,
    unread,
)
from fintrack.notifications.email import EmailResult, notify, send_email_notification

__all__ = [
    "EmailResult",
    "Notification",
    "NotificationStore",
    "ToastDisplay",
    "notify",
    "select_new_toasts",
    "send_email_notification",
    "toast_display",
    "unread",
]
