"""
Telegram Bot Integration Service.

WHAT: Sends messages to the support group chat via the Telegram Bot API.

WHY: Staff watch the support chat all day. SLA warnings and escalations
posted there get attention long before anyone opens the admin panel.

HOW: Uses the Bot API sendMessage method with Markdown formatting.
Message builders produce the text for SLA warning and escalation alerts.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import TelegramNotificationError

logger = logging.getLogger(__name__)


class TelegramService:
    """
    Service for sending messages to a Telegram chat.

    WHAT: Handles communication with the Telegram Bot API.

    WHY: Centralizes Telegram integration logic including configuration
    checks, error classification and message formatting.

    HOW: Uses httpx async client to POST to
    <api_base_url>/bot<token>/sendMessage.

    Attributes:
        bot_token: Bot API token
        chat_id: Target chat (group) ID
        enabled: Whether Telegram notifications are enabled
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        enabled: Optional[bool] = None,
        timeout: float = 10.0,
        api_base_url: Optional[str] = None,
    ):
        """
        Initialize TelegramService.

        WHY: Allows injection of config for testing while defaulting
        to environment settings in production.

        Args:
            bot_token: Bot API token (defaults to settings)
            chat_id: Target chat ID (defaults to settings)
            enabled: Whether notifications are enabled (defaults to settings)
            timeout: HTTP request timeout in seconds
            api_base_url: Bot API base URL (defaults to settings)
        """
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id or settings.TELEGRAM_CHAT_ID
        self.enabled = enabled if enabled is not None else settings.TELEGRAM_ENABLED
        self.timeout = timeout
        self.api_base_url = (api_base_url or settings.TELEGRAM_API_BASE_URL).rstrip("/")

    @property
    def send_message_url(self) -> str:
        return f"{self.api_base_url}/bot{self.bot_token}/sendMessage"

    async def send_message(self, text: str) -> bool:
        """
        Send a message to the configured chat.

        WHAT: Posts a Markdown message through the Bot API.

        Args:
            text: Message text (Markdown)

        Returns:
            True if the message was sent, False if Telegram is disabled or
            not configured (delivery skipped)

        Raises:
            TelegramNotificationError: If the API call fails. The error's
                `retryable` flag is False for 4xx responses other than 429.
        """
        if not self.enabled:
            logger.debug("Telegram notifications disabled, skipping message")
            return False

        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram notification skipped: missing chat_id or bot_token")
            return False

        payload: Dict[str, Any] = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.send_message_url, json=payload)

        except httpx.TimeoutException as e:
            logger.error(f"Telegram API timeout: {e}")
            raise TelegramNotificationError(
                message="Telegram API request timed out",
                timeout=self.timeout,
            ) from e

        except httpx.RequestError as e:
            logger.error(f"Telegram API request error: {e}")
            raise TelegramNotificationError(
                message="Failed to connect to Telegram API",
                error=str(e),
            ) from e

        if response.status_code == 200 and _response_ok(response):
            logger.info("Telegram message sent successfully")
            return True

        # Rate limits and server errors are worth another attempt
        retryable = response.status_code == 429 or response.status_code >= 500
        logger.error(
            f"Telegram API returned error: {response.status_code} - {response.text}"
        )
        raise TelegramNotificationError(
            message="Telegram API returned an error",
            retryable=retryable,
            http_status=response.status_code,
            response_text=response.text,
        )


def _response_ok(response: httpx.Response) -> bool:
    """Bot API responses carry {"ok": true} on success."""
    try:
        return bool(response.json().get("ok"))
    except ValueError:
        return False


# ============================================================================
# Message Builders
# ============================================================================


PRIORITY_EMOJI = {
    "low": "🟢",
    "medium": "🔵",
    "high": "🟠",
    "urgent": "🔴",
}

PRIORITY_LABELS = {
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "urgent": "URGENT",
}


def get_priority_emoji(priority: str) -> str:
    return PRIORITY_EMOJI.get(priority, "⚪")


def get_priority_label(priority: str) -> str:
    return PRIORITY_LABELS.get(priority, priority)


def build_ticket_url(ticket_id: int) -> str:
    """Link to the ticket page in the frontend."""
    return f"{settings.FRONTEND_URL.rstrip('/')}/tickets/{ticket_id}"


def build_sla_warning_message(
    ticket_id: int,
    ticket_number: str,
    subject: str,
    priority: str,
    created_by: Optional[str],
    response_minutes: int,
    minutes_elapsed: int,
    sent_at: Optional[datetime] = None,
) -> str:
    """
    Build Telegram message for an SLA warning.

    WHAT: Formats the alert sent when a ticket exceeds its response budget.

    Args:
        ticket_id: Ticket ID (for the link)
        ticket_number: Human-readable ticket number
        subject: Ticket subject
        priority: Ticket priority value (low, medium, high, urgent)
        created_by: Name of the customer who opened the ticket
        response_minutes: Response budget in minutes
        minutes_elapsed: Minutes since the response clock started
        sent_at: Timestamp shown in the footer (defaults to UTC now)

    Returns:
        Markdown message text
    """
    sent_at = sent_at or datetime.utcnow()

    return (
        f"⚠️ *SLA WARNING* {get_priority_emoji(priority)}\n"
        f"\n"
        f"*Ticket:* `{ticket_number}`\n"
        f"*Subject:* {subject}\n"
        f"*Priority:* {get_priority_label(priority)}\n"
        f"*Created by:* {created_by or 'Unknown'}\n"
        f"\n"
        f"No response after *{response_minutes} minutes*!\n"
        f"🕰 Elapsed: {minutes_elapsed} minutes\n"
        f"\n"
        f"🔗 [View ticket]({build_ticket_url(ticket_id)})\n"
        f"⏰ {sent_at.strftime('%H:%M %d/%m/%Y')}"
    )


def build_sla_escalated_message(
    ticket_id: int,
    ticket_number: str,
    subject: str,
    priority: str,
    created_by: Optional[str],
    assigned_to: Optional[str],
    escalation_threshold: int,
    minutes_elapsed: int,
    sent_at: Optional[datetime] = None,
) -> str:
    """
    Build Telegram message for an SLA escalation to admins.

    WHAT: Formats the alert sent when a ticket exceeds the escalation
    threshold.

    WHY: Includes the assignee so admins know who to follow up with.

    Returns:
        Markdown message text
    """
    sent_at = sent_at or datetime.utcnow()

    return (
        f"🔴 *SLA ESCALATED* {get_priority_emoji(priority)}\n"
        f"\n"
        f"*Ticket:* `{ticket_number}`\n"
        f"*Subject:* {subject}\n"
        f"*Priority:* {get_priority_label(priority)}\n"
        f"*Created by:* {created_by or 'Unknown'}\n"
        f"*Assigned to:* {assigned_to or 'Unassigned'}\n"
        f"\n"
        f"🚨 Escalated to Admin: no response after *{escalation_threshold} minutes*!\n"
        f"🕰 Elapsed: {minutes_elapsed} minutes\n"
        f"\n"
        f"🔗 [View ticket]({build_ticket_url(ticket_id)})\n"
        f"⏰ {sent_at.strftime('%H:%M %d/%m/%Y')}"
    )
