"""
Ticket status service.

WHAT: Changes ticket status and keeps the SLA timer state consistent.

WHY: Every status change must close the current breach cycle and restart
the response clock in the same transaction as the status write. Routing
all status changes through here makes the escalation hook impossible to
forget.

HOW: Under the dispatcher's per-ticket lock, writes the status and its
timestamp through TicketDAO, calls EscalationDispatcher.on_ticket_status_changed
with the same session, then commits.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import TicketNotFoundError
from app.dao.ticket import TicketDAO
from app.models.ticket import Ticket, TicketStatus
from app.services.escalation_dispatcher import (
    EscalationDispatcher,
    get_escalation_dispatcher,
)


logger = logging.getLogger(__name__)


class TicketStatusService:
    """
    Service for ticket status transitions.

    Example:
        async with AsyncSessionLocal() as session:
            service = TicketStatusService(session)
            await service.change_status(ticket_id, TicketStatus.PROCESSING)
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: Optional[EscalationDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the status service.

        Args:
            session: Async database session (committed by change_status)
            dispatcher: Escalation dispatcher providing the status hook
            clock: Returns the current naive-UTC time
        """
        self._session = session
        self._dao = TicketDAO(session)
        self._dispatcher = dispatcher or get_escalation_dispatcher()
        self._clock = clock or datetime.utcnow

    async def change_status(self, ticket_id: int, new_status: TicketStatus) -> Ticket:
        """
        Set a ticket's status.

        WHAT: Updates status, stamps resolved_at / closed_at, runs the
        escalation hook and commits.

        WHY: The read, the status write and the hook run under the
        dispatcher's per-ticket lock until the commit, so a concurrent
        scan either finishes before the change or sees its result.

        Args:
            ticket_id: Ticket ID
            new_status: Target status

        Returns:
            Updated Ticket

        Raises:
            TicketNotFoundError: If the ticket doesn't exist
        """
        async with self._dispatcher.ticket_lock(ticket_id):
            ticket = await self._dao.get_by_id(ticket_id, for_update=True)
            if ticket is None:
                raise TicketNotFoundError(ticket_id=ticket_id)

            old_status = ticket.status
            if old_status == new_status:
                return ticket

            fields = {"status": new_status}
            now = self._clock()
            if new_status == TicketStatus.RESOLVED:
                fields["resolved_at"] = now
            elif new_status == TicketStatus.CLOSED:
                fields["closed_at"] = now

            try:
                await self._dao.update_fields(ticket_id, **fields)
                await self._dispatcher.on_ticket_status_changed(
                    ticket_id,
                    old_status,
                    new_status,
                    session=self._session,
                )
                await self._session.commit()
            except Exception:
                await self._session.rollback()
                raise

        logger.info(
            f"Ticket {ticket.display_number} status changed: "
            f"{old_status.value} -> {new_status.value}"
        )
        return ticket

    async def reopen_for_customer_message(self, ticket_id: int) -> Ticket:
        """
        Reopen a closed ticket when its customer posts a new message.

        WHY: A customer writing into a closed ticket is waiting for an
        answer again, so the ticket goes back to OPEN with a fresh clock.

        Returns:
            The ticket (unchanged unless it was closed)

        Raises:
            TicketNotFoundError: If the ticket doesn't exist
        """
        ticket = await self._dao.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id=ticket_id)

        if ticket.status != TicketStatus.CLOSED:
            return ticket

        logger.info(f"Reopening closed ticket {ticket.display_number} after customer message")
        return await self.change_status(ticket_id, TicketStatus.OPEN)
