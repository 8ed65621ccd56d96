"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across services and the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No sensitive data leaks in error messages
5. Easier debugging with detailed context (ticket_id, level, attempt)

IMPORTANT: NEVER use base Exception class. Always use custom exceptions.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        # WHY: Bot tokens end up in request context for Telegram errors
        sensitive_fields = {"password", "token", "secret", "key", "api_key", "bot_token"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class TicketNotFoundError(ResourceNotFoundError):
    """Raised when a ticket doesn't exist."""

    default_message = "Ticket not found"


class EscalationNotFoundError(ResourceNotFoundError):
    """Raised when an escalation record doesn't exist."""

    default_message = "Escalation not found"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when a business rule is violated.

    WHY: 422 Unprocessable Entity indicates the request was well-formed
    but semantically incorrect.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class EscalationIntegrityError(BusinessRuleViolation):
    """
    Raised when an escalation record would break the staging rule.

    WHAT: An admin-level record was requested for a ticket that has no
    unresolved warning record.

    WHY: The evaluator only ever asks for an escalation after a warning
    exists, so hitting this means a logic error upstream. It is surfaced
    loudly in tests and logged per ticket during a scan.

    HTTP Status: 422 Unprocessable Entity
    """

    default_message = "Escalation requires an unresolved warning record"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for external service failures.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class NotificationDeliveryError(ExternalServiceError):
    """
    Raised when an outbound notification could not be delivered.

    WHY: Delivery failures are retried a bounded number of times and then
    dropped. They never roll back escalation state.

    HTTP Status: 502 Bad Gateway
    """

    default_message = "Notification delivery error"

    def __init__(
        self,
        message: Optional[str] = None,
        retryable: bool = True,
        **context: Any,
    ):
        super().__init__(message=message, **context)
        self.retryable = retryable


class TelegramNotificationError(NotificationDeliveryError):
    """
    Raised when Telegram Bot API calls fail.

    WHY: Telegram is the chat-bot channel for SLA warnings. Timeouts and
    5xx responses are retryable, 4xx responses (bad chat id, bad token) are not.

    HTTP Status: 502 Bad Gateway
    """

    default_message = "Telegram notification error"


# ============================================================================
# Job Exceptions
# ============================================================================


class SLAScanTimeoutError(AppException):
    """
    Raised when an escalation scan exceeds its time budget.

    WHY: The scheduler treats the cycle as failed and simply runs again on
    the next interval. Tickets already processed keep their committed state.

    HTTP Status: 504 Gateway Timeout
    """

    status_code = 504
    default_message = "SLA escalation scan timed out"
