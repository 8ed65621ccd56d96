"""
Unit tests for TelegramService.

WHAT: Tests Telegram Bot API integration and alert message builders.

WHY: Ensures alerts are posted correctly, configuration gaps skip
delivery instead of failing, and API errors are classified so the
dispatcher knows whether to retry.

HOW: Uses mocked HTTP client to verify sendMessage calls.
"""

from datetime import datetime

import httpx
import pytest
from unittest.mock import AsyncMock, patch, MagicMock

from app.services.telegram_service import (
    TelegramService,
    build_ticket_url,
    build_sla_warning_message,
    build_sla_escalated_message,
    get_priority_emoji,
    get_priority_label,
)
from app.core.exceptions import TelegramNotificationError


def make_response(status_code: int, body=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = body if body is not None else {}
    return response


class TestTelegramService:
    """Tests for TelegramService class."""

    @pytest.fixture
    def telegram_service(self):
        """Create TelegramService with test configuration."""
        return TelegramService(
            bot_token="123456:TEST",
            chat_id="-100200300",
            enabled=True,
            api_base_url="https://api.telegram.test/",
        )

    @pytest.fixture
    def disabled_service(self):
        """Create disabled TelegramService."""
        return TelegramService(
            bot_token="123456:TEST",
            chat_id="-100200300",
            enabled=False,
        )

    def test_send_message_url(self, telegram_service):
        assert (
            telegram_service.send_message_url
            == "https://api.telegram.test/bot123456:TEST/sendMessage"
        )

    @pytest.mark.asyncio
    async def test_send_message_success(self, telegram_service):
        """Test successful message sending."""
        with patch("app.services.telegram_service.httpx.AsyncClient") as mock_client:
            mock_post = AsyncMock(return_value=make_response(200, {"ok": True}))
            mock_client.return_value.__aenter__.return_value.post = mock_post

            result = await telegram_service.send_message("Test message")

            assert result is True
            call_args = mock_post.call_args
            assert call_args.args[0] == telegram_service.send_message_url
            payload = call_args.kwargs["json"]
            assert payload["chat_id"] == "-100200300"
            assert payload["text"] == "Test message"
            assert payload["parse_mode"] == "Markdown"

    @pytest.mark.asyncio
    async def test_send_message_disabled(self, disabled_service):
        """Test message not sent when disabled."""
        with patch("app.services.telegram_service.httpx.AsyncClient") as mock_client:
            result = await disabled_service.send_message("Test message")

        assert result is False
        mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_message_missing_chat_id(self):
        """Test message not sent when the chat is not configured."""
        with patch("app.services.telegram_service.settings") as mock_settings:
            mock_settings.TELEGRAM_CHAT_ID = None
            mock_settings.TELEGRAM_API_BASE_URL = "https://api.telegram.org"
            service = TelegramService(bot_token="123456:TEST", chat_id=None, enabled=True)

        result = await service.send_message("Test message")
        assert result is False

    @pytest.mark.asyncio
    async def test_settings_enabled_without_token_skips(self):
        """Enabled in settings but no bot token: skipped without an HTTP call."""
        with patch("app.services.telegram_service.settings") as mock_settings:
            mock_settings.TELEGRAM_ENABLED = True
            mock_settings.TELEGRAM_BOT_TOKEN = None
            mock_settings.TELEGRAM_CHAT_ID = "-100200300"
            mock_settings.TELEGRAM_API_BASE_URL = "https://api.telegram.org"
            service = TelegramService()

        with patch("app.services.telegram_service.httpx.AsyncClient") as mock_client:
            result = await service.send_message("Test message")

        assert service.enabled is True
        assert result is False
        mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_message_ok_false(self, telegram_service):
        """A 200 response with ok=false is still an error."""
        with patch("app.services.telegram_service.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=make_response(200, {"ok": False})
            )

            with pytest.raises(TelegramNotificationError):
                await telegram_service.send_message("Test message")

    @pytest.mark.asyncio
    async def test_send_message_client_error_not_retryable(self, telegram_service):
        """4xx responses (bad chat, bad token) are permanent."""
        with patch("app.services.telegram_service.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=make_response(400, text="Bad Request: chat not found")
            )

            with pytest.raises(TelegramNotificationError) as exc_info:
                await telegram_service.send_message("Test message")

            assert exc_info.value.retryable is False
            assert exc_info.value.context["http_status"] == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 500, 502])
    async def test_send_message_retryable_status(self, telegram_service, status_code):
        """Rate limits and server errors are worth retrying."""
        with patch("app.services.telegram_service.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=make_response(status_code, text="error")
            )

            with pytest.raises(TelegramNotificationError) as exc_info:
                await telegram_service.send_message("Test message")

            assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_send_message_timeout(self, telegram_service):
        """Test error handling for timeout."""
        with patch("app.services.telegram_service.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                side_effect=httpx.TimeoutException("Timeout")
            )

            with pytest.raises(TelegramNotificationError) as exc_info:
                await telegram_service.send_message("Test message")

            assert "timed out" in exc_info.value.message
            assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_send_message_connection_error(self, telegram_service):
        """Test error handling for connection error."""
        with patch("app.services.telegram_service.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                side_effect=httpx.RequestError("Connection failed")
            )

            with pytest.raises(TelegramNotificationError) as exc_info:
                await telegram_service.send_message("Test message")

            assert "connect" in exc_info.value.message
            assert exc_info.value.retryable is True


class TestPriorityHelpers:
    """Tests for priority formatting helpers."""

    def test_known_priorities(self):
        assert get_priority_emoji("urgent") == "🔴"
        assert get_priority_label("urgent") == "URGENT"
        assert get_priority_label("low") == "Low"

    def test_unknown_priority(self):
        assert get_priority_emoji("critical") == "⚪"
        assert get_priority_label("critical") == "critical"


class TestMessageBuilders:
    """Tests for SLA alert message builders."""

    SENT_AT = datetime(2026, 1, 5, 9, 7, 0)

    def test_build_ticket_url(self):
        with patch("app.services.telegram_service.settings") as mock_settings:
            mock_settings.FRONTEND_URL = "https://support.example.com/"
            assert build_ticket_url(42) == "https://support.example.com/tickets/42"

    def test_build_sla_warning_message(self):
        text = build_sla_warning_message(
            ticket_id=42,
            ticket_number="TKT-000042",
            subject="Cannot log in",
            priority="urgent",
            created_by="Nguyen Van A",
            response_minutes=5,
            minutes_elapsed=6,
            sent_at=self.SENT_AT,
        )

        assert "⚠️ *SLA WARNING*" in text
        assert "*Ticket:* `TKT-000042`" in text
        assert "*Subject:* Cannot log in" in text
        assert "*Priority:* URGENT" in text
        assert "*Created by:* Nguyen Van A" in text
        assert "No response after *5 minutes*!" in text
        assert "🕰 Elapsed: 6 minutes" in text
        assert "/tickets/42)" in text
        assert "⏰ 09:07 05/01/2026" in text

    def test_build_sla_warning_message_unknown_creator(self):
        text = build_sla_warning_message(
            ticket_id=42,
            ticket_number="TKT-000042",
            subject="Cannot log in",
            priority="low",
            created_by=None,
            response_minutes=60,
            minutes_elapsed=61,
            sent_at=self.SENT_AT,
        )
        assert "*Created by:* Unknown" in text

    def test_build_sla_escalated_message(self):
        text = build_sla_escalated_message(
            ticket_id=42,
            ticket_number="TKT-000042",
            subject="Cannot log in",
            priority="high",
            created_by="Nguyen Van A",
            assigned_to="Tran Thi B",
            escalation_threshold=22,
            minutes_elapsed=23,
            sent_at=self.SENT_AT,
        )

        assert "🔴 *SLA ESCALATED*" in text
        assert "*Assigned to:* Tran Thi B" in text
        assert "🚨 Escalated to Admin: no response after *22 minutes*!" in text
        assert "🕰 Elapsed: 23 minutes" in text

    def test_build_sla_escalated_message_unassigned(self):
        text = build_sla_escalated_message(
            ticket_id=42,
            ticket_number="TKT-000042",
            subject="Cannot log in",
            priority="high",
            created_by="Nguyen Van A",
            assigned_to=None,
            escalation_threshold=22,
            minutes_elapsed=23,
            sent_at=self.SENT_AT,
        )
        assert "*Assigned to:* Unassigned" in text
