"""
Three-legged OAuth1 handshake with Jira

request token -> user authorizes in the browser -> access token. Tokens of
each step are persisted through the credential store.
"""

import logging
from enum import Enum
from typing import Optional
from urllib.parse import parse_qs, quote

import requests

from ..exceptions import HandshakeError
from .oauth_client import JiraOAuthClient

logger = logging.getLogger(__name__)

REQUEST_TOKEN_PATH = "/plugins/servlet/oauth/request-token"
ACCESS_TOKEN_PATH = "/plugins/servlet/oauth/access-token"
AUTHORIZE_PATH = "/plugins/servlet/oauth/authorize"

DENIED_VERIFIER = "denied"
# Stored as access token while the user has not authorized the request token yet
REQUEST_TOKEN_PLACEHOLDER = "token_request_unfinished"


class HandshakeState(str, Enum):
    NO_TOKEN = "no_token"
    REQUEST_TOKEN_ISSUED = "request_token_issued"
    ACCESS_TOKEN_ISSUED = "access_token_issued"
    DENIED = "denied"


class OAuthHandshake:
    """Runs the OAuth1 dance for one user on one ticket system"""

    def __init__(self, oauth_client: JiraOAuthClient, callback_url: str, timeout: float = 30.0):
        """
        Args:
            oauth_client: signing client bound to the user and ticket system
            callback_url: absolute URL of the application's OAuth callback route
            timeout: seconds per token request
        """
        self.oauth_client = oauth_client
        self.callback_url = callback_url
        self.timeout = timeout
        self.state = self._initial_state()

    @property
    def ticket_system(self):
        return self.oauth_client.ticket_system

    @property
    def base_url(self) -> str:
        return (self.ticket_system.url or "").rstrip("/")

    def _initial_state(self) -> HandshakeState:
        credential = self.oauth_client.credential_store.find(
            self.oauth_client.user_id, self.ticket_system.id
        )
        if credential is None:
            return HandshakeState.NO_TOKEN
        if credential.avoid_connection:
            return HandshakeState.DENIED
        if credential.access_token == REQUEST_TOKEN_PLACEHOLDER:
            return HandshakeState.REQUEST_TOKEN_ISSUED
        if not credential.access_token and not credential.token_secret:
            return HandshakeState.NO_TOKEN
        return HandshakeState.ACCESS_TOKEN_ISSUED

    def get_callback_url(self) -> str:
        """Callback URL carrying the ticket system id, so trackers can share one route"""
        separator = "&" if "?" in self.callback_url else "?"
        return f"{self.callback_url}{separator}tsid={self.ticket_system.id}"

    def get_authorize_url(self, oauth_token: str) -> str:
        return f"{self.base_url}{AUTHORIZE_PATH}?oauth_token={quote(oauth_token, safe='')}"

    def fetch_request_token(self) -> str:
        """
        Fetch a request token and mark the credential row as awaiting authorization.

        The request token itself travels through the browser and comes back
        with the callback, only its secret is kept.

        Returns:
            Jira authorize URL the user has to visit
        """
        client = self.oauth_client.get_client("", "")
        response = self._post(
            client,
            self.base_url + REQUEST_TOKEN_PATH,
            {"oauth_callback": self.get_callback_url()},
        )
        token, secret = self._extract_tokens(response)

        self.oauth_client.credential_store.upsert(
            self.oauth_client.user_id, self.ticket_system.id, REQUEST_TOKEN_PLACEHOLDER, secret, False
        )
        self.state = HandshakeState.REQUEST_TOKEN_ISSUED
        logger.info(
            f"Issued OAuth request token for user {self.oauth_client.user_id} "
            f"on ticket system {self.ticket_system.id}"
        )
        return self.get_authorize_url(token)

    def fetch_access_token(self, request_token: str, verifier: str):
        """
        Exchange an authorized request token for an access token.

        A verifier of "denied" means the user declined; the stored tokens are
        cleared and further synchronization is avoided.
        """
        user_id = self.oauth_client.user_id
        if verifier == DENIED_VERIFIER:
            self.oauth_client.credential_store.upsert(
                user_id, self.ticket_system.id, "", "", True
            )
            self.state = HandshakeState.DENIED
            logger.info(f"User {user_id} denied Jira access on ticket system {self.ticket_system.id}")
            return

        client = self.oauth_client.get_client(request_token, "")
        response = self._post(
            client,
            self.base_url + ACCESS_TOKEN_PATH,
            {"oauth_verifier": verifier},
        )
        token, secret = self._extract_tokens(response)

        self.oauth_client.credential_store.upsert(
            user_id, self.ticket_system.id, token, secret, False
        )
        self.state = HandshakeState.ACCESS_TOKEN_ISSUED
        logger.info(f"Stored OAuth access token for user {user_id} on ticket system {self.ticket_system.id}")

    def _post(self, client: requests.Session, url: str, params: dict) -> requests.Response:
        try:
            response = client.post(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise HandshakeError(str(e), status) from e
        except requests.exceptions.RequestException as e:
            raise HandshakeError(str(e)) from e
        return response

    @staticmethod
    def _extract_tokens(response: requests.Response) -> tuple[str, str]:
        """(oauth_token, oauth_token_secret) from a form-encoded token response"""
        body = response.text or ""
        values = parse_qs(body)
        if not values:
            raise HandshakeError("An unknown error occurred while requesting OAuth token.", 500)

        problem = values.get("oauth_problem")
        if problem:
            raise HandshakeError(f"OAuth problem: {', '.join(problem)}", 401)

        token = _first(values.get("oauth_token"))
        if not token:
            raise HandshakeError("Jira did not return an OAuth token", 500)
        return token, _first(values.get("oauth_token_secret")) or ""


def _first(values: Optional[list[str]]) -> str:
    return values[0] if values else ""
