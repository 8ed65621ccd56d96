"""
Pydantic schemas for escalation reporting.

WHAT: Response shapes for escalation history and statistics.

WHY: Admin reporting returns escalation records together with a summary
of their ticket. Schemas control exactly which fields leave the service.

HOW: Uses Pydantic v2 with ORM mode for SQLAlchemy integration.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from app.models.ticket import TicketStatus, TicketPriority
from app.models.ticket_escalation import EscalationLevel, NotificationChannel


class UserReference(BaseModel):
    """Minimal user info embedded in ticket summaries."""

    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class TicketReference(BaseModel):
    """Ticket summary embedded in escalation responses."""

    id: int
    ticket_number: Optional[str] = None
    subject: str
    status: TicketStatus
    priority: TicketPriority
    is_escalated: bool
    response_clock_start: Optional[datetime] = None
    first_escalated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TicketDetailReference(TicketReference):
    """Ticket summary with creator and assignee."""

    user: Optional[UserReference] = None
    assigned_to: Optional[UserReference] = None


class EscalationResponse(BaseModel):
    """
    Escalation record.

    WHY: Used in paginated history listings.
    """

    id: int
    ticket_id: int
    escalation_level: EscalationLevel
    escalated_at: datetime
    notification_channel: NotificationChannel
    is_resolved: bool
    resolved_at: Optional[datetime] = None
    ticket: Optional[TicketReference] = None

    class Config:
        from_attributes = True


class EscalationDetailResponse(EscalationResponse):
    """Escalation record with the ticket's creator and assignee."""

    ticket: Optional[TicketDetailReference] = None


class EscalationListResponse(BaseModel):
    """Paginated escalation history."""

    items: List[EscalationResponse]
    total: int = Field(..., ge=0)
    skip: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)


class TopEscalatedTicket(BaseModel):
    """Ticket ranked by number of escalation records."""

    ticket_id: int
    ticket_number: Optional[str] = None
    escalation_count: int


class EscalationStatistics(BaseModel):
    """
    Escalation summary for the admin dashboard.

    WHAT: Totals across all records plus the most escalated tickets.
    """

    total: int = 0
    unresolved: int = 0
    warnings: int = 0
    escalated: int = 0
    top_tickets: List[TopEscalatedTicket] = Field(default_factory=list)
