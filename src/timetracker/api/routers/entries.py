"""
Entries Router - per-entry worklog sync, called when an entry is saved or deleted
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...config import Config, get_config
from ...repositories import SqlEntryRepository
from ...services.factory import JiraServices, create_jira_services
from ..models.database import Entry, User, get_db
from ..models.schemas import EntrySyncResult
from .auth import get_current_user

router = APIRouter()


def _load(db: Session, entry_id: int, user: User, config: Config) -> tuple[Entry, JiraServices]:
    entry = SqlEntryRepository(db).get(entry_id)
    if entry is None or entry.user_id != user.id:
        raise HTTPException(status_code=404, detail="Entry not found")

    ticket_system = entry.project.ticket_system if entry.project is not None else None
    if ticket_system is None:
        raise HTTPException(status_code=400, detail="Entry has no ticket system")

    return entry, create_jira_services(db, user.id, ticket_system, config)


@router.post("/{entry_id}/worklog", response_model=EntrySyncResult)
def sync_entry_worklog(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: Config = Depends(get_config),
):
    """Create or update the Jira worklog of one entry"""
    entry, services = _load(db, entry_id, current_user, config)
    outcome = services.synchronizer.sync_one(entry)
    return EntrySyncResult(
        entry_id=entry.id,
        status=outcome.value,
        ticket=entry.ticket,
        worklog_id=entry.worklog_id,
    )


@router.delete("/{entry_id}/worklog", response_model=EntrySyncResult)
def delete_entry_worklog(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: Config = Depends(get_config),
):
    """Remove the Jira worklog of one entry"""
    entry, services = _load(db, entry_id, current_user, config)
    outcome = services.synchronizer.delete_one(entry)
    return EntrySyncResult(
        entry_id=entry.id,
        status=outcome.value,
        ticket=entry.ticket,
        worklog_id=entry.worklog_id,
    )
