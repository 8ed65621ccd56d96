"""
User Data Access Object.

WHY: UserDAO provides database operations for User model, following
the DAO pattern for separation of concerns and testability.
"""

from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.user import User, UserRole


class UserDAO(BaseDAO[User]):
    """
    Data Access Object for User model.

    WHY: Escalation fan-out needs the set of active admins. Keeping the
    query here keeps the role and activity filter in one place.
    """

    def __init__(self, session: AsyncSession):
        """Initialize UserDAO with session."""
        super().__init__(User, session)

    async def create_user(
        self,
        name: str,
        email: str,
        role: UserRole = UserRole.CUSTOMER,
        is_active: bool = True,
    ) -> User:
        """Create a user with the given role."""
        return await self.create(
            name=name,
            email=email.lower(),
            role=role,
            is_active=is_active,
        )

    async def get_active_admins(self) -> List[User]:
        """
        Get all active admin users.

        WHAT: Recipients of in-app escalation notifications.

        WHY: Deactivated admins must stop receiving alerts.

        Returns:
            List of active admins ordered by ID
        """
        query = (
            select(User)
            .where(
                User.role == UserRole.ADMIN,
                User.is_active.is_(True),
            )
            .order_by(User.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
