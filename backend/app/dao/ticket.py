"""
Ticket Data Access Object.

WHAT: DAO for ticket persistence and the SLA timer fields.

WHY: Encapsulates all ticket database operations used by the escalation
engine:
1. Listing tickets eligible for an escalation scan
2. Row-locked re-fetch for per-ticket serialization
3. Field updates for the timer state (clock, flags)
4. Ticket creation with the response clock started

HOW: Uses SQLAlchemy 2.0 async with proper session management.
"""

from datetime import datetime
from typing import Optional, List, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.ticket import Ticket, TicketStatus, TicketPriority


TICKET_NUMBER_PREFIX = "TKT"


def format_ticket_number(ticket_id: int) -> str:
    """Human-readable ticket number, e.g. TKT-000042."""
    return f"{TICKET_NUMBER_PREFIX}-{ticket_id:06d}"


class TicketDAO:
    """
    Data Access Object for Ticket operations.

    WHAT: Manages ticket reads and timer-state writes.

    HOW: All methods are async and use the injected session, so callers
    control transaction boundaries.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize TicketDAO with database session.

        Args:
            session: AsyncSession for database operations
        """
        self.session = session

    async def create(
        self,
        user_id: int,
        subject: str,
        description: str = "",
        priority: TicketPriority = TicketPriority.MEDIUM,
        assigned_to_user_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> Ticket:
        """
        Create a new support ticket.

        WHAT: Creates an OPEN ticket with its response clock started.

        WHY: The SLA window of a new ticket starts at creation time.

        Args:
            user_id: Customer creating the ticket
            subject: Ticket subject line
            description: Detailed description
            priority: Ticket priority (selects the SLA budget)
            assigned_to_user_id: Optional assigned staff member
            created_at: Creation time (defaults to UTC now)

        Returns:
            Created Ticket instance
        """
        created_at = created_at or datetime.utcnow()
        ticket = Ticket(
            user_id=user_id,
            subject=subject,
            description=description,
            status=TicketStatus.OPEN,
            priority=priority,
            assigned_to_user_id=assigned_to_user_id,
            response_clock_start=created_at,
            is_escalated=False,
            created_at=created_at,
        )

        self.session.add(ticket)
        await self.session.flush()

        ticket.ticket_number = format_ticket_number(ticket.id)
        await self.session.flush()
        await self.session.refresh(ticket)

        return ticket

    async def get_by_id(
        self,
        ticket_id: int,
        for_update: bool = False,
    ) -> Optional[Ticket]:
        """
        Get ticket by ID.

        WHY: The escalation scan re-fetches each ticket with a row lock so
        that a concurrent scan or status change waits for this ticket's
        read-decide-write sequence to commit.

        Args:
            ticket_id: Ticket ID
            for_update: Take a row lock (SELECT ... FOR UPDATE)

        Returns:
            Ticket or None if not found
        """
        query = select(Ticket).where(Ticket.id == ticket_id)

        if for_update:
            query = query.with_for_update()
            # WHY: Bypass the identity map so the locked read sees the
            # committed row, not a stale copy from an earlier query.
            query = query.execution_options(populate_existing=True)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_open_non_escalated(self) -> List[Ticket]:
        """
        Get tickets eligible for an escalation scan.

        WHAT: Tickets with status OPEN that have not reached admin level.

        WHY: Non-open tickets are being handled, and escalated tickets have
        nothing left to raise in their current breach cycle.

        Returns:
            List of Ticket objects ordered by ID
        """
        query = (
            select(Ticket)
            .where(
                Ticket.status == TicketStatus.OPEN,
                Ticket.is_escalated.is_(False),
            )
            .order_by(Ticket.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_fields(self, ticket_id: int, **fields: Any) -> Optional[Ticket]:
        """
        Update ticket fields.

        Args:
            ticket_id: Ticket ID
            **fields: Column names and new values

        Returns:
            Updated Ticket or None if not found

        Raises:
            AttributeError: If a field is not a Ticket attribute
        """
        ticket = await self.get_by_id(ticket_id)
        if ticket is None:
            return None

        for field, value in fields.items():
            if not hasattr(Ticket, field):
                raise AttributeError(f"Ticket has no field '{field}'")
            setattr(ticket, field, value)

        await self.session.flush()
        return ticket
