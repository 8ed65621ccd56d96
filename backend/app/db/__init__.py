"""Database package"""

from app.db.session import AsyncSessionLocal, engine
from app.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine"]
