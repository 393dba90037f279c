"""
API Models - SQLAlchemy tables and Pydantic schemas
"""

from .database import (
    Activity,
    Base,
    Entry,
    Project,
    TicketSystem,
    User,
    UserTicketSystem,
)

__all__ = [
    "Activity",
    "Base",
    "Entry",
    "Project",
    "TicketSystem",
    "User",
    "UserTicketSystem",
]
