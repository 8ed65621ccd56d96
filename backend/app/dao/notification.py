"""
Notification Data Access Object.

WHY: In-app notifications are written in bulk (one per admin) when a
ticket reaches admin escalation, and read back per user.
"""

from typing import Optional, List, Dict, Any

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.notification import Notification


class NotificationDAO(BaseDAO[Notification]):
    """Data Access Object for in-app notifications."""

    def __init__(self, session: AsyncSession):
        """Initialize NotificationDAO with session."""
        super().__init__(Notification, session)

    async def create_for_users(
        self,
        user_ids: List[int],
        type: str,
        title: str,
        message: str,
        ticket_id: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        """
        Create the same notification for several users.

        Args:
            user_ids: Recipient user IDs
            type: Notification type (e.g. "ticket_escalated")
            title: Short title
            message: Body text
            ticket_id: Related ticket
            data: Structured payload for the client

        Returns:
            Created notifications
        """
        notifications = [
            Notification(
                user_id=user_id,
                ticket_id=ticket_id,
                type=type,
                title=title,
                message=message,
                data=data,
            )
            for user_id in user_ids
        ]
        self.session.add_all(notifications)
        await self.session.flush()
        return notifications

    async def list_for_user(
        self,
        user_id: int,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        """List a user's notifications, newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read_at.is_(None))
        query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())
