"""
Unit tests for EscalationNotifier.

WHAT: Tests alert delivery to Telegram and admin inboxes.

WHY: Delivery runs after escalation state has committed, so the notifier
must report every outcome as a DeliveryResult and never raise.
"""

from dataclasses import replace

import pytest
from unittest.mock import AsyncMock, MagicMock

from app.core.exceptions import TelegramNotificationError
from app.dao.notification import NotificationDAO
from app.models.notification import TICKET_ESCALATED
from app.models.user import UserRole
from app.services.escalation_evaluator import EscalationMetrics
from app.services.notification_service import (
    DeliveryResult,
    DeliveryStatus,
    EscalationNotifier,
    TicketNotice,
)
from app.services.telegram_service import TelegramService
from tests.factories import BASE_TIME, TicketFactory, UserFactory


NOTICE = TicketNotice(
    ticket_id=42,
    ticket_number="TKT-000042",
    subject="Cannot log in",
    priority="urgent",
    created_by="Nguyen Van A",
    assigned_to=None,
)

METRICS = EscalationMetrics(
    minutes_elapsed=7,
    response_budget_minutes=5,
    escalation_threshold_minutes=7,
)


@pytest.fixture
def mock_telegram():
    telegram = MagicMock(spec=TelegramService)
    telegram.send_message = AsyncMock(return_value=True)
    return telegram


class TestDeliveryResult:
    """Tests for the delivery result value."""

    def test_delivered_is_ok(self):
        assert DeliveryResult.delivered().ok

    def test_skipped_is_ok(self):
        result = DeliveryResult.skipped("telegram disabled")
        assert result.ok
        assert result.status == DeliveryStatus.SKIPPED

    def test_failed_is_not_ok(self):
        result = DeliveryResult.failed("boom", retryable=False)
        assert not result.ok
        assert result.retryable is False


class TestTelegramAlerts:
    """Tests for the chat alerts."""

    @pytest.mark.asyncio
    async def test_send_warning_delivered(self, mock_telegram, session_factory):
        notifier = EscalationNotifier(telegram_service=mock_telegram, session_factory=session_factory)

        result = await notifier.send_warning(NOTICE, METRICS)

        assert result.status == DeliveryStatus.DELIVERED
        text = mock_telegram.send_message.call_args.args[0]
        assert "SLA WARNING" in text
        assert "No response after *5 minutes*!" in text

    @pytest.mark.asyncio
    async def test_send_escalation_uses_threshold(self, mock_telegram, session_factory):
        notifier = EscalationNotifier(telegram_service=mock_telegram, session_factory=session_factory)

        result = await notifier.send_escalation(NOTICE, METRICS)

        assert result.ok
        text = mock_telegram.send_message.call_args.args[0]
        assert "SLA ESCALATED" in text
        assert "*7 minutes*" in text
        assert "Unassigned" in text

    @pytest.mark.asyncio
    async def test_disabled_telegram_is_skipped(self, mock_telegram, session_factory):
        mock_telegram.send_message.return_value = False
        notifier = EscalationNotifier(telegram_service=mock_telegram, session_factory=session_factory)

        result = await notifier.send_warning(NOTICE, METRICS)

        assert result.status == DeliveryStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_permanent_telegram_error(self, mock_telegram, session_factory):
        mock_telegram.send_message.side_effect = TelegramNotificationError(
            message="Telegram API returned an error",
            retryable=False,
            http_status=400,
        )
        notifier = EscalationNotifier(telegram_service=mock_telegram, session_factory=session_factory)

        result = await notifier.send_warning(NOTICE, METRICS)

        assert result.status == DeliveryStatus.FAILED
        assert result.retryable is False
        assert result.error == "Telegram API returned an error"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_retryable(self, mock_telegram, session_factory):
        mock_telegram.send_message.side_effect = RuntimeError("socket closed")
        notifier = EscalationNotifier(telegram_service=mock_telegram, session_factory=session_factory)

        result = await notifier.send_escalation(NOTICE, METRICS)

        assert result.status == DeliveryStatus.FAILED
        assert result.retryable is True


class TestAdminNotifications:
    """Tests for in-app admin notifications."""

    @pytest.mark.asyncio
    async def test_notifies_every_active_admin(
        self, mock_telegram, session_factory, db_session, test_admin, test_customer
    ):
        ticket = await TicketFactory.create(db_session, test_customer, created_at=BASE_TIME)
        notice = replace(NOTICE, ticket_id=ticket.id)
        second_admin = await UserFactory.create(db_session, role=UserRole.ADMIN)
        inactive_admin = await UserFactory.create(db_session, role=UserRole.ADMIN, is_active=False)
        staff = await UserFactory.create(db_session, role=UserRole.CSKH)
        notifier = EscalationNotifier(telegram_service=mock_telegram, session_factory=session_factory)

        result = await notifier.notify_admins(notice, METRICS)

        assert result.status == DeliveryStatus.DELIVERED
        dao = NotificationDAO(db_session)
        for admin in (test_admin, second_admin):
            notifications = await dao.list_for_user(admin.id)
            assert len(notifications) == 1
            notification = notifications[0]
            assert notification.type == TICKET_ESCALATED
            assert notification.title == "Ticket TKT-000042 needs attention!"
            assert notification.ticket_id == ticket.id
            assert notification.data["escalation_threshold"] == 7
            assert notification.data["minutes_elapsed"] == 7
        assert await dao.list_for_user(inactive_admin.id) == []
        assert await dao.list_for_user(staff.id) == []
        mock_telegram.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_admins_is_skipped(self, mock_telegram, session_factory):
        notifier = EscalationNotifier(telegram_service=mock_telegram, session_factory=session_factory)

        result = await notifier.notify_admins(NOTICE, METRICS)

        assert result.status == DeliveryStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_database_error_is_failed(self, mock_telegram):
        broken_factory = MagicMock(side_effect=RuntimeError("database unavailable"))
        notifier = EscalationNotifier(telegram_service=mock_telegram, session_factory=broken_factory)

        result = await notifier.notify_admins(NOTICE, METRICS)

        assert result.status == DeliveryStatus.FAILED
        assert result.retryable is True
        assert "database unavailable" in result.error
