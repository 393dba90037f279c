"""
Jira Router - OAuth callback and worklog synchronization
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...config import Config, get_config
from ...services.factory import create_jira_services
from ..models.database import TicketSystem, User, get_db
from ..models.schemas import SyncResponse
from .auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ticket_system(db: Session, ticket_system_id: Optional[int]) -> TicketSystem:
    ticket_system = db.get(TicketSystem, ticket_system_id) if ticket_system_id is not None else None
    if ticket_system is None:
        raise HTTPException(status_code=404, detail="Ticket system not found")
    return ticket_system


@router.get("/jiraoauthcallback")
def jira_oauth_callback(
    tsid: Optional[int] = None,
    oauth_token: Optional[str] = None,
    oauth_verifier: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: Config = Depends(get_config),
):
    """
    Landing point after the user answered Jira's authorization page.

    Stores the access token (or the denial) and syncs the newest pending
    entry right away to prove the connection.
    """
    ticket_system = get_ticket_system(db, tsid)
    if not oauth_token or not oauth_verifier:
        raise HTTPException(status_code=400, detail="Invalid OAuth callback parameters")

    services = create_jira_services(db, current_user.id, ticket_system, config)
    services.handshake.fetch_access_token(oauth_token, oauth_verifier)
    services.synchronizer.sync_pending(limit=1)

    return RedirectResponse(url="/", status_code=302)


@router.get("/api/jira/{ticket_system_id}/authorize")
def authorize(
    ticket_system_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: Config = Depends(get_config),
):
    """Start the OAuth handshake and redirect to Jira's authorization page"""
    ticket_system = get_ticket_system(db, ticket_system_id)
    services = create_jira_services(db, current_user.id, ticket_system, config)
    return RedirectResponse(url=services.handshake.fetch_request_token(), status_code=302)


@router.post("/api/sync/jira/{ticket_system_id}", response_model=SyncResponse)
def sync_jira_entries(
    ticket_system_id: int,
    limit: Optional[int] = Query(default=None, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: Config = Depends(get_config),
):
    """Sync pending entries of the current user; all of them unless limit is given"""
    ticket_system = get_ticket_system(db, ticket_system_id)
    services = create_jira_services(db, current_user.id, ticket_system, config)
    report = services.synchronizer.sync_pending(limit)

    logger.info(
        f"Jira sync for user {current_user.id} on ticket system {ticket_system_id}: "
        f"{len(report.outcomes)} ok, {len(report.failures)} failed"
    )
    return SyncResponse.from_report(report)
