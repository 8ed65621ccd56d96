"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from app.models.base import Base, TimestampMixin, PrimaryKeyMixin
from app.models.user import User, UserRole
from app.models.ticket import Ticket, TicketStatus, TicketPriority
from app.models.ticket_escalation import (
    TicketEscalation,
    EscalationLevel,
    NotificationChannel,
    LEVEL_CHANNELS,
)
from app.models.notification import Notification, TICKET_ESCALATED

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "User",
    "UserRole",
    "Ticket",
    "TicketStatus",
    "TicketPriority",
    "TicketEscalation",
    "EscalationLevel",
    "NotificationChannel",
    "LEVEL_CHANNELS",
    "Notification",
    "TICKET_ESCALATED",
]
