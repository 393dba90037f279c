"""
Worklog synchronization

Pushes local time entries of one user into Jira worklogs of one ticket
system. Every entry is created, updated or deleted remotely on its own and
persisted right after, so a failing entry never blocks the others.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

from ..api.models.database import Entry, TicketSystem
from ..exceptions import SyncLockedError, Unauthorized
from ..repositories import CredentialStore, EntryRepository
from .jira_gateway import JiraGateway, format_worklog_comment, format_worklog_started

logger = logging.getLogger(__name__)


class SyncOutcome(str, Enum):
    SKIPPED = "skipped"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass
class SyncFailure:
    """An entry whose synchronization raised"""
    entry_id: int
    ticket: str
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class SyncReport:
    """Result of one batch synchronization"""
    user_id: int
    ticket_system_id: int
    outcomes: dict[int, SyncOutcome] = field(default_factory=dict)  # entry_id -> outcome
    failures: list[SyncFailure] = field(default_factory=list)
    authorize_url: Optional[str] = None  # Set when Jira asked for re-authorization
    gated: bool = False                  # Sync not permitted for this user/ticket system
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total(self) -> int:
        return len(self.outcomes) + len(self.failures)

    def count(self, outcome: SyncOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)


class SyncLockRegistry:
    """Locks keyed by (user_id, ticket_system_id), shared by all synchronizers of a process"""

    def __init__(self):
        self._locks: dict[tuple[int, int], threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, user_id: int, ticket_system_id: int) -> Iterator[None]:
        key = (user_id, ticket_system_id)
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        if not lock.acquire(blocking=False):
            raise SyncLockedError(user_id, ticket_system_id)
        try:
            yield
        finally:
            lock.release()


default_locks = SyncLockRegistry()


def has_ticket(entry: Entry) -> bool:
    return bool(entry.ticket) and entry.ticket != "0"


class WorklogSynchronizer:
    """Keeps Jira worklogs in line with the entries of one user on one ticket system"""

    def __init__(
        self,
        ticket_system: TicketSystem,
        user_id: int,
        gateway: JiraGateway,
        entries: EntryRepository,
        credentials: CredentialStore,
        locks: Optional[SyncLockRegistry] = None,
    ):
        self.ticket_system = ticket_system
        self.user_id = user_id
        self.gateway = gateway
        self.entries = entries
        self.credentials = credentials
        self.locks = locks if locks is not None else default_locks

    def check_user_ticket_system(self) -> bool:
        """Whether Jira may be contacted at all for this user and ticket system"""
        if not self.ticket_system.book_time:
            return False
        credential = self.credentials.find(self.user_id, self.ticket_system.id)
        return credential is None or not credential.avoid_connection

    def sync_one(self, entry: Entry) -> SyncOutcome:
        """
        Create or update the worklog of entry.

        Entries without ticket, on unknown tickets or with sync disabled are
        skipped. A zero duration removes the worklog, Jira does not accept
        empty worklogs.

        Raises:
            JiraApiError: the connector failed, entry state is left as is
        """
        if not has_ticket(entry):
            return SyncOutcome.SKIPPED
        if not self.check_user_ticket_system():
            return SyncOutcome.SKIPPED

        ticket = entry.ticket
        if not self.gateway.does_ticket_exist(ticket):
            logger.info(f"Skipping entry {entry.id}: ticket {ticket} does not exist in Jira")
            return SyncOutcome.SKIPPED

        if (entry.duration or 0) <= 0:
            return self.delete_one(entry)

        if entry.worklog_id is not None and not self.gateway.does_worklog_exist(ticket, entry.worklog_id):
            logger.info(f"Worklog {entry.worklog_id} of entry {entry.id} is gone from {ticket}, creating a new one")
            entry.worklog_id = None

        comment = format_worklog_comment(entry.id, entry.activity_name, entry.description)
        started = format_worklog_started(entry.day, entry.start)
        seconds = entry.duration * 60

        if entry.worklog_id:
            self.gateway.update_worklog(ticket, entry.worklog_id, comment, started, seconds)
            outcome = SyncOutcome.UPDATED
        else:
            created = self.gateway.create_worklog(ticket, comment, started, seconds)
            entry.worklog_id = created.id
            outcome = SyncOutcome.CREATED

        entry.synced_to_ticketsystem = True
        self.entries.save(entry)
        return outcome

    def delete_one(self, entry: Entry) -> SyncOutcome:
        """Remove the worklog of entry; a worklog already gone counts as removed"""
        if not has_ticket(entry):
            return SyncOutcome.SKIPPED
        if entry.worklog_id is None or int(entry.worklog_id) <= 0:
            return SyncOutcome.SKIPPED
        if not self.check_user_ticket_system():
            return SyncOutcome.SKIPPED

        self.gateway.delete_worklog(entry.ticket, entry.worklog_id)
        entry.worklog_id = None
        self.entries.save(entry)
        return SyncOutcome.DELETED

    def sync_pending(self, limit: Optional[int], cancel_event: Optional[threading.Event] = None) -> SyncReport:
        """
        Synchronize unsynced entries, most recent first.

        Args:
            limit: maximum number of entries, None for all of them
            cancel_event: checked between entries, stops the batch when set

        Returns:
            SyncReport with the outcome of every processed entry and the
            failures that were caught

        Raises:
            SyncLockedError: another sync for this user and ticket system runs
        """
        report = SyncReport(self.user_id, self.ticket_system.id)
        if not self.check_user_ticket_system():
            report.gated = True
            return report

        with self.locks.hold(self.user_id, self.ticket_system.id):
            pending = self.entries.find_pending_entries(self.user_id, self.ticket_system.id, limit)
            logger.info(
                f"Syncing {len(pending)} entries of user {self.user_id} to ticket system {self.ticket_system.id}"
            )

            for entry in pending:
                if cancel_event is not None and cancel_event.is_set():
                    report.cancelled = True
                    break

                try:
                    report.outcomes[entry.id] = self.sync_one(entry)
                except Unauthorized as e:
                    self._record_failure(report, entry, e)
                    report.authorize_url = e.redirect_url
                    # Every following entry would need the same re-authorization
                    break
                except Exception as e:
                    self._record_failure(report, entry, e)
                finally:
                    self._persist(report, entry)

        return report

    def _record_failure(self, report: SyncReport, entry: Entry, error: Exception):
        logger.warning(
            f"Failed to sync worklog of entry {entry.id} (ticket {entry.ticket}, "
            f"ticket system {self.ticket_system.id}): {error}"
        )
        report.failures.append(SyncFailure(entry.id, entry.ticket, error))

    def _persist(self, report: SyncReport, entry: Entry):
        try:
            self.entries.save(entry)
        except Exception as e:
            logger.exception(f"Failed to store sync state of entry {entry.id}")
            report.outcomes.pop(entry.id, None)
            report.failures.append(SyncFailure(entry.id, entry.ticket, e))
