"""
Escalation Notification Service.

WHAT: Delivers SLA warning and escalation alerts to their channels:
- Telegram support chat (warnings and escalations)
- In-app notifications for every active admin (escalations)

WHY: Escalation state is committed before anything is sent. Delivery is
best-effort and must never corrupt or roll back that state, so every
method reports a DeliveryResult instead of raising.

HOW: Event methods receive a TicketNotice (a detached snapshot of the
ticket), format messages with the Telegram builders and delegate to the
channel. The dispatcher decides whether to retry from the result.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import NotificationDeliveryError
from app.dao.notification import NotificationDAO
from app.dao.user import UserDAO
from app.db.session import AsyncSessionLocal
from app.models.notification import TICKET_ESCALATED
from app.services.escalation_evaluator import EscalationMetrics
from app.services.telegram_service import (
    TelegramService,
    build_sla_warning_message,
    build_sla_escalated_message,
)

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    """Outcome of one delivery attempt."""

    DELIVERED = "delivered"
    SKIPPED = "skipped"  # Channel disabled, unconfigured or no recipients
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryResult:
    """
    Result of a notification delivery attempt.

    WHAT: Explicit success/failure value returned by every sink call.

    WHY: Lets the dispatcher own the retry policy without catching
    channel-specific exceptions.
    """

    status: DeliveryStatus
    retryable: bool = False
    error: Optional[str] = None

    @classmethod
    def delivered(cls) -> "DeliveryResult":
        return cls(status=DeliveryStatus.DELIVERED)

    @classmethod
    def skipped(cls, reason: Optional[str] = None) -> "DeliveryResult":
        return cls(status=DeliveryStatus.SKIPPED, error=reason)

    @classmethod
    def failed(cls, error: str, retryable: bool = True) -> "DeliveryResult":
        return cls(status=DeliveryStatus.FAILED, retryable=retryable, error=error)

    @property
    def ok(self) -> bool:
        """True unless the delivery failed."""
        return self.status != DeliveryStatus.FAILED


@dataclass(frozen=True)
class TicketNotice:
    """
    Ticket details needed to format an alert.

    WHY: Deliveries run after the ticket's transaction has committed and
    its session is closed, so they work from plain values.
    """

    ticket_id: int
    ticket_number: str
    subject: str
    priority: str
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None


class EscalationNotifier:
    """
    Sends escalation alerts to Telegram and admin inboxes.

    Attributes:
        telegram_service: Telegram chat channel
        session_factory: Session factory for writing in-app notifications
    """

    def __init__(
        self,
        telegram_service: Optional[TelegramService] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        """
        Initialize EscalationNotifier.

        WHY: Allows dependency injection for testing while defaulting
        to production services.
        """
        self.telegram_service = telegram_service or TelegramService()
        self.session_factory = session_factory or AsyncSessionLocal

    async def send_warning(
        self,
        ticket: TicketNotice,
        metrics: EscalationMetrics,
    ) -> DeliveryResult:
        """
        Post an SLA warning to the support chat.

        Args:
            ticket: Ticket snapshot
            metrics: Elapsed minutes and budget from the evaluation

        Returns:
            DeliveryResult
        """
        logger.info(f"Sending SLA warning notification for ticket {ticket.ticket_number}")

        text = build_sla_warning_message(
            ticket_id=ticket.ticket_id,
            ticket_number=ticket.ticket_number,
            subject=ticket.subject,
            priority=ticket.priority,
            created_by=ticket.created_by,
            response_minutes=metrics.response_budget_minutes,
            minutes_elapsed=metrics.minutes_elapsed,
        )
        return await self._send_telegram(text)

    async def send_escalation(
        self,
        ticket: TicketNotice,
        metrics: EscalationMetrics,
    ) -> DeliveryResult:
        """
        Post an SLA escalation to the support chat.

        Args:
            ticket: Ticket snapshot
            metrics: Elapsed minutes and threshold from the evaluation

        Returns:
            DeliveryResult
        """
        logger.info(f"Sending SLA escalation notification for ticket {ticket.ticket_number}")

        text = build_sla_escalated_message(
            ticket_id=ticket.ticket_id,
            ticket_number=ticket.ticket_number,
            subject=ticket.subject,
            priority=ticket.priority,
            created_by=ticket.created_by,
            assigned_to=ticket.assigned_to,
            escalation_threshold=metrics.escalation_threshold_minutes,
            minutes_elapsed=metrics.minutes_elapsed,
        )
        return await self._send_telegram(text)

    async def notify_admins(
        self,
        ticket: TicketNotice,
        metrics: EscalationMetrics,
    ) -> DeliveryResult:
        """
        Write an in-app notification for every active admin.

        WHAT: One `ticket_escalated` notification row per admin.

        WHY: The admin inbox is durable. Admins see the escalation even if
        the chat message was lost.

        HOW: Uses its own session and commits independently of the
        escalation transaction, which has already committed.

        Returns:
            DeliveryResult (skipped when there are no active admins)
        """
        try:
            async with self.session_factory() as session:
                admins = await UserDAO(session).get_active_admins()
                if not admins:
                    logger.warning(
                        f"No active admins to notify for escalated ticket {ticket.ticket_number}"
                    )
                    return DeliveryResult.skipped("no active admins")

                await NotificationDAO(session).create_for_users(
                    user_ids=[admin.id for admin in admins],
                    type=TICKET_ESCALATED,
                    title=f"Ticket {ticket.ticket_number} needs attention!",
                    message=(
                        f"Ticket has been waiting more than "
                        f"{metrics.escalation_threshold_minutes} minutes without a response."
                    ),
                    ticket_id=ticket.ticket_id,
                    data={
                        "ticket_number": ticket.ticket_number,
                        "subject": ticket.subject,
                        "priority": ticket.priority,
                        "escalation_threshold": metrics.escalation_threshold_minutes,
                        "minutes_elapsed": metrics.minutes_elapsed,
                    },
                )
                await session.commit()

        except Exception as e:
            logger.error(
                f"Failed to write admin notifications for ticket {ticket.ticket_number}: {e}"
            )
            return DeliveryResult.failed(str(e), retryable=True)

        logger.info(
            f"Notified {len(admins)} admin(s) about escalated ticket {ticket.ticket_number}"
        )
        return DeliveryResult.delivered()

    async def _send_telegram(self, text: str) -> DeliveryResult:
        """Send through Telegram and convert the outcome to a DeliveryResult."""
        try:
            sent = await self.telegram_service.send_message(text)
        except NotificationDeliveryError as e:
            return DeliveryResult.failed(e.message, retryable=e.retryable)
        except Exception as e:
            logger.error(f"Unexpected error sending Telegram notification: {e}")
            return DeliveryResult.failed(str(e), retryable=True)

        if not sent:
            return DeliveryResult.skipped("telegram disabled")
        return DeliveryResult.delivered()
