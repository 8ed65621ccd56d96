"""
Ticket Escalation Data Access Object.

WHAT: DAO for the append-only escalation record store.

WHY: Encapsulates the queries behind the escalation invariants:
1. At most one unresolved record per (ticket, level)
2. ESCALATED only on top of an unresolved WARNING
3. Closing a breach cycle resolves every open record of the ticket
4. Filtered history and statistics for admin reporting

HOW: Uses SQLAlchemy 2.0 async. Conflicting inserts are wrapped in a
SAVEPOINT so a lost race only undoes the single insert.
"""

import logging
from datetime import datetime
from typing import Optional, List, Set, Tuple, Dict, Any

from sqlalchemy import select, update, func, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.dao.base import BaseDAO
from app.models.ticket import Ticket
from app.models.ticket_escalation import (
    TicketEscalation,
    EscalationLevel,
    NotificationChannel,
    LEVEL_CHANNELS,
)
from app.core.exceptions import EscalationIntegrityError


logger = logging.getLogger(__name__)


class TicketEscalationDAO(BaseDAO[TicketEscalation]):
    """
    Data Access Object for TicketEscalation records.

    WHAT: Creates, looks up and resolves escalation records.

    WHY: The dispatcher and the status-change hook are the only writers.
    Keeping their queries here keeps both paths consistent.
    """

    def __init__(self, session: AsyncSession):
        """Initialize TicketEscalationDAO with session."""
        super().__init__(TicketEscalation, session)

    # =========================================================================
    # Record store
    # =========================================================================

    async def find_unresolved(
        self,
        ticket_id: int,
        level: EscalationLevel,
    ) -> Optional[TicketEscalation]:
        """
        Get the unresolved record of a level for a ticket.

        Args:
            ticket_id: Ticket ID
            level: Escalation level

        Returns:
            The unresolved record, or None
        """
        query = (
            select(TicketEscalation)
            .where(
                TicketEscalation.ticket_id == ticket_id,
                TicketEscalation.escalation_level == level,
                TicketEscalation.is_resolved.is_(False),
            )
            .order_by(desc(TicketEscalation.escalated_at))
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_unresolved_levels(self, ticket_id: int) -> Set[EscalationLevel]:
        """
        Get the levels that currently have an unresolved record.

        WHY: The evaluator only needs to know which stages are open in the
        current breach cycle, not the full history.

        Args:
            ticket_id: Ticket ID

        Returns:
            Set of EscalationLevel values
        """
        query = select(TicketEscalation.escalation_level).where(
            TicketEscalation.ticket_id == ticket_id,
            TicketEscalation.is_resolved.is_(False),
        )
        result = await self.session.execute(query)
        return {EscalationLevel(level) for level in result.scalars().all()}

    async def create_record(
        self,
        ticket_id: int,
        level: EscalationLevel,
        escalated_at: datetime,
        channel: Optional[NotificationChannel] = None,
    ) -> TicketEscalation:
        """
        Create an unresolved escalation record.

        WHAT: Appends one record to the ticket's escalation log.

        WHY: Enforces staging: an ESCALATED record needs an unresolved
        WARNING on the same ticket.

        Args:
            ticket_id: Ticket ID
            level: Escalation level
            escalated_at: When the escalation was raised
            channel: Notification channel (defaults per level)

        Returns:
            Created TicketEscalation

        Raises:
            EscalationIntegrityError: ESCALATED requested without a warning
            IntegrityError: An unresolved record of this level already exists
        """
        if level == EscalationLevel.ESCALATED:
            warning = await self.find_unresolved(ticket_id, EscalationLevel.WARNING)
            if warning is None:
                raise EscalationIntegrityError(
                    ticket_id=ticket_id,
                    level=level.value,
                )

        return await self.create(
            ticket_id=ticket_id,
            escalation_level=level,
            escalated_at=escalated_at,
            notification_channel=channel or LEVEL_CHANNELS[level],
            is_resolved=False,
        )

    async def create_if_absent(
        self,
        ticket_id: int,
        level: EscalationLevel,
        escalated_at: datetime,
        channel: Optional[NotificationChannel] = None,
    ) -> Optional[TicketEscalation]:
        """
        Create an unresolved record unless a concurrent writer already did.

        WHAT: Same as create_record, but a unique-index conflict is a no-op.

        WHY: Two overlapping scans may both decide to raise the same stage.
        The partial unique index lets exactly one insert win. The loser's
        attempt is not an error.

        HOW: The insert runs inside a SAVEPOINT so the conflict only rolls
        back this insert, not the rest of the ticket's transaction.

        Returns:
            Created TicketEscalation, or None if the insert lost the race
        """
        try:
            async with self.session.begin_nested():
                return await self.create_record(
                    ticket_id=ticket_id,
                    level=level,
                    escalated_at=escalated_at,
                    channel=channel,
                )
        except IntegrityError:
            logger.info(
                f"Unresolved {level.value} record already exists for ticket {ticket_id}, skipping"
            )
            return None

    async def resolve_all_unresolved(self, ticket_id: int, resolved_at: datetime) -> int:
        """
        Resolve every unresolved record of a ticket.

        WHAT: Closes the ticket's current breach cycle.

        Args:
            ticket_id: Ticket ID
            resolved_at: Resolution timestamp

        Returns:
            Number of records resolved
        """
        result = await self.session.execute(
            update(TicketEscalation)
            .where(
                TicketEscalation.ticket_id == ticket_id,
                TicketEscalation.is_resolved.is_(False),
            )
            .values(is_resolved=True, resolved_at=resolved_at)
        )
        return result.rowcount or 0

    async def list_for_ticket(self, ticket_id: int) -> List[TicketEscalation]:
        """Get the full escalation history of a ticket, oldest first."""
        query = (
            select(TicketEscalation)
            .where(TicketEscalation.ticket_id == ticket_id)
            .order_by(TicketEscalation.escalated_at, TicketEscalation.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # Reporting
    # =========================================================================

    async def search(
        self,
        level: Optional[EscalationLevel] = None,
        resolved: Optional[bool] = None,
        ticket_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[TicketEscalation], int]:
        """
        List escalation records with filters, newest first.

        Args:
            level: Only this level
            resolved: Only resolved (True) or unresolved (False) records
            ticket_id: Only records of this ticket
            skip: Records to skip (pagination)
            limit: Maximum records to return

        Returns:
            Tuple of (records with ticket loaded, total matching count)
        """
        conditions = []
        if level is not None:
            conditions.append(TicketEscalation.escalation_level == level)
        if resolved is not None:
            conditions.append(TicketEscalation.is_resolved.is_(resolved))
        if ticket_id is not None:
            conditions.append(TicketEscalation.ticket_id == ticket_id)

        count_query = select(func.count()).select_from(TicketEscalation).where(*conditions)
        total = (await self.session.execute(count_query)).scalar_one()

        query = (
            select(TicketEscalation)
            .options(selectinload(TicketEscalation.ticket))
            .where(*conditions)
            .order_by(desc(TicketEscalation.escalated_at), desc(TicketEscalation.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def get_with_ticket(self, escalation_id: int) -> Optional[TicketEscalation]:
        """Get one record with its ticket, creator and assignee loaded."""
        query = (
            select(TicketEscalation)
            .options(
                selectinload(TicketEscalation.ticket).selectinload(Ticket.user),
                selectinload(TicketEscalation.ticket).selectinload(Ticket.assigned_to),
            )
            .where(TicketEscalation.id == escalation_id)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def count_by_level(self) -> Dict[EscalationLevel, int]:
        """Count records per level (resolved and unresolved)."""
        query = select(
            TicketEscalation.escalation_level,
            func.count(TicketEscalation.id),
        ).group_by(TicketEscalation.escalation_level)
        result = await self.session.execute(query)
        counts = {level: 0 for level in EscalationLevel}
        for level, count in result.all():
            counts[EscalationLevel(level)] = count
        return counts

    async def top_escalated_tickets(self, limit: int = 5) -> List[Dict[str, Any]]:
        """
        Get the tickets with the most escalation records.

        Returns:
            List of dicts with ticket_id, ticket_number and escalation_count
        """
        escalation_count = func.count(TicketEscalation.id).label("escalation_count")
        query = (
            select(TicketEscalation.ticket_id, Ticket.ticket_number, escalation_count)
            .join(Ticket, Ticket.id == TicketEscalation.ticket_id)
            .group_by(TicketEscalation.ticket_id, Ticket.ticket_number)
            .order_by(desc(escalation_count), TicketEscalation.ticket_id)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [
            {
                "ticket_id": row.ticket_id,
                "ticket_number": row.ticket_number,
                "escalation_count": row.escalation_count,
            }
            for row in result.all()
        ]
