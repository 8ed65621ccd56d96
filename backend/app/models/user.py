"""
User model.

WHY: Users are customers who open tickets and the support staff (CSKH and
admins) who answer them. The role decides who receives admin escalations.
"""

import enum
from sqlalchemy import Column, String, Enum, Boolean
from sqlalchemy.orm import relationship

from app.models.base import Base, TimestampMixin, PrimaryKeyMixin


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    WHY: Enum ensures only valid roles can be assigned. ADMIN users are the
    recipients of in-app escalation notifications.
    """

    ADMIN = "admin"  # Full access, receives SLA escalations
    CSKH = "cskh"  # Customer-service staff answering tickets
    CUSTOMER = "customer"  # Opens tickets and replies in the thread


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """User model representing customers and support staff."""

    __tablename__ = "users"

    # User identification
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Authorization
    role = Column(
        Enum(UserRole, name="userrole", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.CUSTOMER,
    )

    # Account status
    # WHY: Deactivated admins must stop receiving escalation notifications
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    created_tickets = relationship(
        "Ticket",
        foreign_keys="Ticket.user_id",
        back_populates="user",
    )
    assigned_tickets = relationship(
        "Ticket",
        foreign_keys="Ticket.assigned_to_user_id",
        back_populates="assigned_to",
    )
    notifications = relationship(
        "Notification",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"
