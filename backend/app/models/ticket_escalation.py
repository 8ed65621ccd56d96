"""
Ticket escalation records.

WHAT: Append-only log of SLA escalation events per ticket.

WHY: Each record marks one stage of one breach cycle:
- WARNING: the response budget was exceeded (chat-bot alert)
- ESCALATED: the extended threshold was exceeded (admin alert)

Records stay unresolved until the ticket's status changes, which closes
the breach cycle. They are never deleted in normal operation.

HOW: A partial unique index on (ticket_id, escalation_level) over the
unresolved rows enforces at most one open record per level, so two
racing scans cannot both raise the same stage.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    Index,
    text,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

from app.models.base import Base
from app.models.ticket import _enum_values

if TYPE_CHECKING:
    from app.models.ticket import Ticket


class EscalationLevel(str, Enum):
    """
    Escalation stage.

    WHY: Exactly two fixed stages. ESCALATED can only follow an
    unresolved WARNING on the same ticket.
    """

    WARNING = "warning"
    ESCALATED = "escalated"


class NotificationChannel(str, Enum):
    """Medium used to announce an escalation record."""

    TELEGRAM = "telegram"  # Chat-bot alert to the support group
    ADMIN = "admin"  # In-app notifications to every admin


# Default channel per level
LEVEL_CHANNELS = {
    EscalationLevel.WARNING: NotificationChannel.TELEGRAM,
    EscalationLevel.ESCALATED: NotificationChannel.ADMIN,
}


class TicketEscalation(Base):
    """
    One escalation event raised by the SLA scan.

    Security: Admin-only data, exposed through reporting queries.
    """

    __tablename__ = "ticket_escalations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )

    escalation_level: Mapped[EscalationLevel] = mapped_column(
        SQLEnum(EscalationLevel, name="escalationlevel", values_callable=_enum_values),
        nullable=False,
    )
    escalated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    notification_channel: Mapped[NotificationChannel] = mapped_column(
        SQLEnum(
            NotificationChannel,
            name="notificationchannel",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    # Breach cycle closure
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, onupdate=func.now(), nullable=True
    )

    # Relationships
    ticket: Mapped["Ticket"] = relationship("Ticket", back_populates="escalations")

    __table_args__ = (
        Index("ix_ticket_escalations_ticket_level", "ticket_id", "escalation_level"),
        Index("ix_ticket_escalations_is_resolved", "is_resolved"),
        Index("ix_ticket_escalations_escalated_at", "escalated_at"),
        Index(
            "uq_ticket_escalations_unresolved_level",
            "ticket_id",
            "escalation_level",
            unique=True,
            postgresql_where=text("is_resolved = false"),
            sqlite_where=text("is_resolved = 0"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<TicketEscalation(id={self.id}, ticket_id={self.ticket_id}, "
            f"level={self.escalation_level.value}, resolved={self.is_resolved})>"
        )
