"""Email notifications through the send-email-notification function."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from fintrack.auth import AuthUser
from fintrack.config import get_config
from fintrack.db.models import NotificationType
from fintrack.profiles import UserProfile

logger = logging.getLogger(__name__)

EMAIL_FUNCTION = "send-email-notification"


@dataclass
class EmailResult:
    success: bool
    error: Optional[str] = None


async def send_email_notification(
    notification_type: NotificationType,
    user_email: str,
    user_name: Optional[str],
    data: dict[str, Any],
) -> EmailResult:
    """
    Post one notification to the email function.

    Never raises; transport and HTTP failures come back as
    ``EmailResult(success=False, error=...)``.
    """
    try:
        notification_type = NotificationType(notification_type)
    except ValueError:
        logger.warning(f"Unknown notification type: {notification_type}")
        return EmailResult(success=False, error="Unknown notification type")

    config = get_config()

    api_url = f"{config.functions_base_url()}/{EMAIL_FUNCTION}"
    headers = {"Authorization": f"Bearer {config.supabase_anon_key.get_secret_value()}"}
    body = {
        "type": notification_type.value,
        "userEmail": user_email,
        "userName": user_name,
        "data": data,
    }
    timeout = aiohttp.ClientTimeout(total=config.http_timeout_seconds)

    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(api_url, json=body, headers=headers) as response:
                result = await response.json(content_type=None)
                if response.status >= 400:
                    message = result.get("error") if isinstance(result, dict) else None
                    return EmailResult(success=False, error=message or "Failed to send email notification")
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.error(f"Email service error: {e}")
        return EmailResult(success=False, error=str(e) or "Failed to send email notification")

    return EmailResult(success=bool(isinstance(result, dict) and result.get("success")))


async def notify(
    user: Optional[AuthUser],
    profile: Optional[UserProfile],
    notification_type: NotificationType,
    data: dict[str, Any],
) -> EmailResult:
    """Send a notification email to a user, addressed by their display name."""
    if user is None or not user.email or profile is None or not profile.display_name:
        logger.warning("Cannot send notification: missing user email or name")
        return EmailResult(success=False, error="User information not available")

    return await send_email_notification(notification_type, user.email, profile.display_name, data)
