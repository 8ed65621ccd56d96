"""
Test factories for creating test data.

WHY: Factories provide a consistent, reusable way to create test objects,
reducing duplication and making tests more maintainable. Using factories
instead of manual object creation ensures tests stay consistent when models change.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.ticket import TicketDAO
from app.dao.ticket_escalation import TicketEscalationDAO
from app.dao.user import UserDAO
from app.models.ticket import Ticket, TicketStatus, TicketPriority
from app.models.ticket_escalation import TicketEscalation, EscalationLevel, LEVEL_CHANNELS
from app.models.user import User, UserRole


# Fixed reference time for clock-driven tests
BASE_TIME = datetime(2026, 1, 5, 9, 0, 0)


class UserFactory:
    """
    Factory for creating User test instances.

    WHY: Centralizes user creation logic for tests.
    """

    _counter = 0

    @classmethod
    async def create(
        cls,
        session: AsyncSession,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: UserRole = UserRole.CUSTOMER,
        is_active: bool = True,
    ) -> User:
        """
        Create a user for testing.

        Args:
            session: Database session
            name: Display name (auto-generated if omitted)
            email: Email (auto-generated if omitted)
            role: User role
            is_active: Whether the account is active

        Returns:
            Created User instance (committed)
        """
        cls._counter += 1
        user = await UserDAO(session).create_user(
            name=name or f"User {cls._counter}",
            email=email or f"user{cls._counter}@example.com",
            role=role,
            is_active=is_active,
        )
        await session.commit()
        return user


class TicketFactory:
    """
    Factory for creating Ticket test instances.

    WHY: Escalation tests need tickets with a known response clock start,
    so created_at is always explicit.
    """

    @staticmethod
    async def create(
        session: AsyncSession,
        user: User,
        created_at: datetime,
        priority: TicketPriority = TicketPriority.MEDIUM,
        subject: str = "Cannot log in",
        status: TicketStatus = TicketStatus.OPEN,
        assigned_to: Optional[User] = None,
    ) -> Ticket:
        """
        Create a ticket for testing.

        Args:
            session: Database session
            user: Creating customer
            created_at: Creation time (also the response clock start)
            priority: Ticket priority
            subject: Subject line
            status: Initial status (written directly, no hook)
            assigned_to: Optional assigned staff member

        Returns:
            Created Ticket instance (committed)
        """
        dao = TicketDAO(session)
        ticket = await dao.create(
            user_id=user.id,
            subject=subject,
            description=f"Description for {subject}",
            priority=priority,
            assigned_to_user_id=assigned_to.id if assigned_to else None,
            created_at=created_at,
        )
        if status != TicketStatus.OPEN:
            await dao.update_fields(ticket.id, status=status)
        await session.commit()
        return ticket


class EscalationFactory:
    """Factory for creating TicketEscalation records directly."""

    @staticmethod
    async def create(
        session: AsyncSession,
        ticket: Ticket,
        level: EscalationLevel,
        escalated_at: datetime,
        is_resolved: bool = False,
        resolved_at: Optional[datetime] = None,
    ) -> TicketEscalation:
        """
        Create an escalation record for testing.

        WHY: Resolved records bypass the staging check, which only applies
        to new unresolved records.
        """
        dao = TicketEscalationDAO(session)
        if is_resolved:
            record = await dao.create(
                ticket_id=ticket.id,
                escalation_level=level,
                escalated_at=escalated_at,
                notification_channel=LEVEL_CHANNELS[level],
                is_resolved=True,
                resolved_at=resolved_at or escalated_at,
            )
        else:
            record = await dao.create_record(
                ticket_id=ticket.id,
                level=level,
                escalated_at=escalated_at,
            )
        await session.commit()
        return record
