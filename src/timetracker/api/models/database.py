"""
SQLAlchemy Database Models for TimeTracker

Only the tables the Jira worklog synchronization reads or writes are mapped.
"""

from datetime import datetime
from typing import Generator, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, relationship, sessionmaker

SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)
_engine: Optional[Engine] = None


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


class User(Base):
    """Time tracking user"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    entries = relationship("Entry", back_populates="user")
    ticket_system_credentials = relationship(
        "UserTicketSystem", back_populates="user", cascade="all, delete-orphan"
    )


class TicketSystem(Base):
    """External issue tracker instance (Jira)"""
    __tablename__ = "ticket_systems"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    type = Column(String(20), nullable=False, default="JIRA")
    url = Column(String(255), nullable=False)
    ticket_url = Column(String(255), nullable=False, default="")  # e.g. https://jira/browse/%s
    book_time = Column(Boolean, nullable=False, default=False)  # Sync worklogs at all
    oauth_consumer_key = Column(String(255), nullable=True)
    oauth_consumer_secret = Column(Text, nullable=True)  # PEM private key or path to one

    # Relationships
    projects = relationship("Project", back_populates="ticket_system")


class Project(Base):
    """Customer project, bound to at most one ticket system"""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(127), nullable=False)
    ticket_system_id = Column(Integer, ForeignKey("ticket_systems.id"), nullable=True)
    jira_id = Column(String(63), nullable=True)  # Jira project key for new issues

    # Relationships
    ticket_system = relationship("TicketSystem", back_populates="projects")
    entries = relationship("Entry", back_populates="project")


class Activity(Base):
    """Kind of work, e.g. Development or Meeting"""
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)


class Entry(Base):
    """A booked time interval"""
    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=True)

    ticket = Column(String(32), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    day = Column(Date, nullable=False)
    start = Column(Time, nullable=False)
    end = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False, default=0)  # Minutes

    # Jira sync status
    worklog_id = Column(Integer, nullable=True)
    synced_to_ticketsystem = Column(Boolean, nullable=False, default=False)

    # Relationships
    user = relationship("User", back_populates="entries")
    project = relationship("Project", back_populates="entries")
    activity = relationship("Activity")

    @property
    def activity_name(self) -> Optional[str]:
        return self.activity.name if self.activity is not None else None


class UserTicketSystem(Base):
    """OAuth credentials of one user for one ticket system"""
    __tablename__ = "users_ticket_systems"
    __table_args__ = (UniqueConstraint("user_id", "ticket_system_id", name="uniq_user_ticket_system"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    ticket_system_id = Column(Integer, ForeignKey("ticket_systems.id"), nullable=False)
    access_token = Column(Text, nullable=False, default="")  # Encrypted
    token_secret = Column(Text, nullable=False, default="")  # Encrypted
    avoid_connection = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="ticket_system_credentials")
    ticket_system = relationship("TicketSystem")


# Database initialization
def configure_engine(database_url: str, **kwargs) -> Engine:
    """Create the engine for database_url and bind SessionLocal to it"""
    global _engine
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    _engine = create_engine(database_url, echo=False, **kwargs)
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine() -> Engine:
    """Engine bound to SessionLocal, configured from Config on first use"""
    if _engine is None:
        from ...config import CONFIG_DIR, Config

        config = Config.load()
        if not config.database_url:
            CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        configure_engine(config.get_database_url())
    return _engine


def init_db():
    """Create all tables"""
    Base.metadata.create_all(get_engine())


def get_db() -> Generator[Session, None, None]:
    """Dependency for getting database session"""
    get_engine()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
