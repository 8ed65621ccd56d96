"""
Escalation reporting service.

WHAT: Read-only queries over the escalation record store for admins.

WHY: Admins review which tickets breached their SLA, how often, and
whether the breach cycle has been closed. Provides:
- Filtered, paginated history (by level, resolution and ticket)
- A single record with its ticket and the people involved
- Summary statistics with the most escalated tickets
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import EscalationNotFoundError, ValidationError
from app.dao.ticket_escalation import TicketEscalationDAO
from app.models.ticket_escalation import EscalationLevel
from app.schemas.escalation import (
    EscalationDetailResponse,
    EscalationListResponse,
    EscalationResponse,
    EscalationStatistics,
    TopEscalatedTicket,
)


logger = logging.getLogger(__name__)


MAX_PAGE_SIZE = 100
TOP_TICKETS_LIMIT = 5


class EscalationReportService:
    """
    Service for escalation history and statistics.

    Example:
        report = EscalationReportService(session)
        stats = await report.get_statistics()
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize reporting service with database session.

        Args:
            session: Async database session
        """
        self._session = session
        self._dao = TicketEscalationDAO(session)

    async def list_escalations(
        self,
        level: Optional[EscalationLevel] = None,
        resolved: Optional[bool] = None,
        ticket_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> EscalationListResponse:
        """
        List escalation records, newest first.

        Args:
            level: Only records of this level
            resolved: Only resolved (True) or unresolved (False) records
            ticket_id: Only records of this ticket
            skip: Records to skip
            limit: Page size (1-100)

        Returns:
            EscalationListResponse with items and total count

        Raises:
            ValidationError: If pagination parameters are out of range
        """
        if skip < 0:
            raise ValidationError(message="skip must be >= 0", skip=skip)
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                message=f"limit must be between 1 and {MAX_PAGE_SIZE}",
                limit=limit,
            )

        records, total = await self._dao.search(
            level=level,
            resolved=resolved,
            ticket_id=ticket_id,
            skip=skip,
            limit=limit,
        )

        return EscalationListResponse(
            items=[EscalationResponse.model_validate(record) for record in records],
            total=total,
            skip=skip,
            limit=limit,
        )

    async def get_escalation(self, escalation_id: int) -> EscalationDetailResponse:
        """
        Get one escalation record with its ticket.

        Raises:
            EscalationNotFoundError: If the record doesn't exist
        """
        record = await self._dao.get_with_ticket(escalation_id)
        if record is None:
            raise EscalationNotFoundError(escalation_id=escalation_id)
        return EscalationDetailResponse.model_validate(record)

    async def get_statistics(self) -> EscalationStatistics:
        """
        Summarize all escalation records.

        Returns:
            EscalationStatistics with totals per level, the unresolved
            count and the top five tickets by escalation count
        """
        by_level = await self._dao.count_by_level()
        unresolved = await self._dao.count(is_resolved=False)
        top = await self._dao.top_escalated_tickets(limit=TOP_TICKETS_LIMIT)

        return EscalationStatistics(
            total=sum(by_level.values()),
            unresolved=unresolved,
            warnings=by_level[EscalationLevel.WARNING],
            escalated=by_level[EscalationLevel.ESCALATED],
            top_tickets=[TopEscalatedTicket(**row) for row in top],
        )
