"""
Wiring of the Jira services for one user and ticket system
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..api.models.database import TicketSystem
from ..config import Config
from ..repositories import SqlCredentialStore, SqlEntryRepository
from .jira_gateway import JiraGateway
from .oauth_client import JiraOAuthClient, get_client_cache
from .oauth_handshake import OAuthHandshake
from .token_encryption import TokenEncryption
from .worklog_sync import SyncLockRegistry, WorklogSynchronizer


@dataclass
class JiraServices:
    oauth_client: JiraOAuthClient
    handshake: OAuthHandshake
    gateway: JiraGateway
    synchronizer: WorklogSynchronizer


def create_jira_services(
    session: Session,
    user_id: int,
    ticket_system: TicketSystem,
    config: Optional[Config] = None,
    locks: Optional[SyncLockRegistry] = None,
) -> JiraServices:
    """Build the services bound to user_id on ticket_system, storing through session"""
    config = config or Config.load()

    credentials = SqlCredentialStore(session, TokenEncryption(config.get_encryption_key()))
    entries = SqlEntryRepository(session)

    oauth_client = JiraOAuthClient(
        ticket_system, user_id, credentials,
        get_client_cache(ticket_system.id, config.client_cache_size),
    )
    handshake = OAuthHandshake(oauth_client, config.get_callback_url(), config.request_timeout)
    gateway = JiraGateway(oauth_client, handshake, config.request_timeout)
    synchronizer = WorklogSynchronizer(
        ticket_system, user_id, gateway, entries, credentials, locks
    )
    return JiraServices(oauth_client, handshake, gateway, synchronizer)
