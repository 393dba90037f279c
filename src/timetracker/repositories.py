"""
Data access used by the Jira worklog synchronization

The synchronizer only talks to the protocols below; the SQLAlchemy classes are
the implementations used by the API and the CLI.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from .api.models.database import Entry, Project, UserTicketSystem
from .services.token_encryption import TokenEncryption, TokenEncryptionError

logger = logging.getLogger(__name__)


@dataclass
class Credential:
    """Stored OAuth token pair of one user for one ticket system"""
    access_token: str
    token_secret: str
    avoid_connection: bool = False


class EntryRepository(Protocol):
    def find_pending_entries(
        self, user_id: int, ticket_system_id: int, limit: Optional[int]
    ) -> list[Entry]:
        """Unsynced entries, newest first (day desc, start desc)"""
        ...

    def save(self, entry: Entry) -> None:
        ...


class CredentialStore(Protocol):
    def find(self, user_id: int, ticket_system_id: int) -> Optional[Credential]:
        ...

    def upsert(
        self,
        user_id: int,
        ticket_system_id: int,
        access_token: str,
        token_secret: str,
        avoid_connection: bool = False,
    ) -> Credential:
        ...


class SqlEntryRepository:
    """Entries stored through SQLAlchemy"""

    def __init__(self, session: Session):
        self.session = session

    def get(self, entry_id: int) -> Optional[Entry]:
        return self.session.get(Entry, entry_id)

    def find_pending_entries(
        self, user_id: int, ticket_system_id: int, limit: Optional[int]
    ) -> list[Entry]:
        stmt = (
            select(Entry)
            .join(Project, Entry.project_id == Project.id)
            .where(Entry.user_id == user_id)
            .where(Entry.synced_to_ticketsystem.is_(False))
            .where(Project.ticket_system_id == ticket_system_id)
            .order_by(Entry.day.desc(), Entry.start.desc())
        )
        if limit is not None and limit > 0:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def save(self, entry: Entry) -> None:
        """Commit one entry on its own, without a batch-wide transaction"""
        self.session.add(entry)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise


class SqlCredentialStore:
    """UserTicketSystem rows, tokens encrypted at rest"""

    def __init__(self, session: Session, encryption: Optional[TokenEncryption] = None):
        self.session = session
        self.encryption = encryption

    def _row(self, user_id: int, ticket_system_id: int) -> Optional[UserTicketSystem]:
        stmt = select(UserTicketSystem).where(
            UserTicketSystem.user_id == user_id,
            UserTicketSystem.ticket_system_id == ticket_system_id,
        )
        return self.session.scalars(stmt).first()

    def _decrypt(self, value: str) -> str:
        if self.encryption is None:
            return value
        try:
            return self.encryption.decrypt(value)
        except TokenEncryptionError:
            # Rows written before encryption was introduced hold plain tokens
            return value

    def _encrypt(self, value: str) -> str:
        if self.encryption is None:
            return value
        return self.encryption.encrypt(value)

    def find(self, user_id: int, ticket_system_id: int) -> Optional[Credential]:
        row = self._row(user_id, ticket_system_id)
        if row is None:
            return None
        return Credential(
            access_token=self._decrypt(row.access_token or ""),
            token_secret=self._decrypt(row.token_secret or ""),
            avoid_connection=bool(row.avoid_connection),
        )

    def upsert(
        self,
        user_id: int,
        ticket_system_id: int,
        access_token: str,
        token_secret: str,
        avoid_connection: bool = False,
    ) -> Credential:
        row = self._row(user_id, ticket_system_id)
        if row is None:
            row = UserTicketSystem(user_id=user_id, ticket_system_id=ticket_system_id)
            self.session.add(row)

        row.access_token = self._encrypt(access_token)
        row.token_secret = self._encrypt(token_secret)
        row.avoid_connection = avoid_connection
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.debug(
            f"Stored credentials for user {user_id} on ticket system {ticket_system_id} "
            f"(avoid_connection={avoid_connection})"
        )
        return Credential(access_token, token_secret, avoid_connection)
