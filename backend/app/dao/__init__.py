"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from app.dao.base import BaseDAO
from app.dao.user import UserDAO
from app.dao.ticket import TicketDAO, format_ticket_number
from app.dao.ticket_escalation import TicketEscalationDAO
from app.dao.notification import NotificationDAO

__all__ = [
    "BaseDAO",
    "UserDAO",
    "TicketDAO",
    "format_ticket_number",
    "TicketEscalationDAO",
    "NotificationDAO",
]
