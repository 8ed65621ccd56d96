"""
Ticket model for the support ticketing system.

WHAT: SQLAlchemy model for customer support tickets.

WHY: Provides structured support request management with:
1. Priority-based SLA response budgets
2. Status workflow (open → processing → pending → resolved → closed)
3. Response clock tracking for SLA escalation
4. Escalation flags for the current breach cycle

HOW: Uses SQLAlchemy 2.0 with:
- Enums for status and priority fields
- Foreign keys to the creating customer and the assigned staff member
- Helper properties for the display number and the response clock anchor
- Proper indexing for the escalation scan query
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import (
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.ticket_escalation import TicketEscalation
    from app.models.user import User


def _enum_values(enum_cls) -> List[str]:
    """Persist enum values (lowercase) rather than member names."""
    return [member.value for member in enum_cls]


# ============================================================================
# Enums
# ============================================================================


class TicketStatus(str, Enum):
    """
    Ticket status values.

    WHAT: Tracks the lifecycle of a support ticket.

    WHY: Status determines SLA escalation behavior:
    - OPEN: Waiting for staff, response clock running, eligible for escalation
    - PROCESSING: Staff is working on it, not escalated
    - PENDING: Waiting on the customer, not escalated
    - RESOLVED: Issue addressed
    - CLOSED: Ticket completed (reopens on a new customer message)
    """

    OPEN = "open"
    PROCESSING = "processing"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    """
    Ticket priority levels.

    WHAT: Determines the SLA response budget.

    WHY: Priority-based budgets ensure critical issues get faster attention.
    Defaults: URGENT 5m, HIGH 15m, MEDIUM 30m, LOW 60m.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ============================================================================
# Ticket Model
# ============================================================================


class Ticket(Base):
    """
    Support ticket opened by a customer.

    WHAT: Represents a support request and its SLA timer state.

    WHY: The escalation engine reads the timer fields on every scan:
    - response_clock_start anchors elapsed waiting time
    - first_escalated_at records the first warning ever raised
    - is_escalated excludes tickets already at admin level from scans
    """

    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_number: Mapped[Optional[str]] = mapped_column(
        String(32), unique=True, nullable=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    assigned_to_user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )

    # Ticket details
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Classification
    status: Mapped[TicketStatus] = mapped_column(
        SQLEnum(TicketStatus, name="ticketstatus", values_callable=_enum_values),
        default=TicketStatus.OPEN,
        nullable=False,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        SQLEnum(TicketPriority, name="ticketpriority", values_callable=_enum_values),
        default=TicketPriority.MEDIUM,
        nullable=False,
    )

    # SLA timer state
    response_clock_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    """Start of the current response-waiting window. Reset on every status change."""

    first_escalated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    """When the first SLA warning was raised. Set once, never reset."""

    is_escalated: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    """True once the ticket reached admin escalation in its current breach cycle."""

    # Status timestamps
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, onupdate=func.now(), nullable=True
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User", foreign_keys=[user_id], back_populates="created_tickets"
    )
    assigned_to: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[assigned_to_user_id], back_populates="assigned_tickets"
    )
    escalations: Mapped[List["TicketEscalation"]] = relationship(
        "TicketEscalation",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketEscalation.escalated_at",
    )

    # Indexes for common queries
    __table_args__ = (
        Index("ix_tickets_status", "status"),
        Index("ix_tickets_priority", "priority"),
        Index("ix_tickets_status_is_escalated", "status", "is_escalated"),
        Index("ix_tickets_assigned_to", "assigned_to_user_id"),
        Index("ix_tickets_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, number={self.ticket_number}, status={self.status.value})>"

    @property
    def display_number(self) -> str:
        """Ticket number for messages, falling back to the primary key."""
        return self.ticket_number or f"#{self.id}"

    @property
    def response_start_time(self) -> datetime:
        """Anchor for SLA elapsed time (response clock, else creation time)."""
        return self.response_clock_start or self.created_at
