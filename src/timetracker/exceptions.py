"""Error types raised by the Jira integration."""

from typing import Optional


class JiraApiError(Exception):
    """Base class for Jira integration errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConfigurationError(JiraApiError):
    """Ticket system credentials or certificate are unusable."""


class Unauthorized(JiraApiError):
    """Jira answered 401; the user has to authorize via redirect_url."""

    def __init__(self, message: str, redirect_url: str):
        super().__init__(message, 401)
        self.redirect_url = redirect_url


class ResourceNotFound(JiraApiError):
    """Jira answered 404."""

    def __init__(self, message: str):
        super().__init__(message, 404)


class TransportError(JiraApiError):
    """Any other network or HTTP failure."""


class DecodeError(TransportError):
    """Jira answered with a payload of unexpected shape."""


class HandshakeError(JiraApiError):
    """OAuth request or access token exchange failed."""


class SyncLockedError(Exception):
    """A synchronization for the same user and ticket system is already running."""

    def __init__(self, user_id: int, ticket_system_id: int):
        super().__init__(
            f"Worklog sync already running for user {user_id} on ticket system {ticket_system_id}"
        )
        self.user_id = user_id
        self.ticket_system_id = ticket_system_id
