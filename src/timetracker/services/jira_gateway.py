"""
Jira REST API gateway

Typed operations on issues and worklogs over the OAuth1 signed client. HTTP
failures are translated into the error types of timetracker.exceptions.
"""

import logging
from datetime import date, datetime, time
from enum import Enum
from typing import Any, NoReturn, Optional

import requests

from ..exceptions import HandshakeError, ResourceNotFound, TransportError, Unauthorized
from .jira_models import CreatedIssue, CreatedWorklog, Issue, SearchResult, decode
from .oauth_client import JiraOAuthClient
from .oauth_handshake import REQUEST_TOKEN_PLACEHOLDER, OAuthHandshake

logger = logging.getLogger(__name__)

API_PATH = "/rest/api/latest/"
NO_ACTIVITY = "no activity specified"
NO_DESCRIPTION = "no description given"


class ResourceStatus(Enum):
    """Outcome of an existence check; only FOUND is truthy"""
    FOUND = "found"
    NOT_FOUND = "not_found"

    def __bool__(self) -> bool:
        return self is ResourceStatus.FOUND


def format_worklog_started(day: date, start: time) -> str:
    """
    Jira worklog start, e.g. "2016-02-17T14:35:00.000+0100".

    Date from day, hours and minutes from start, server local offset. Jira
    rejects any other format with a 400.
    """
    started = datetime.combine(day, time(start.hour, start.minute)).astimezone()
    return started.strftime("%Y-%m-%dT%H:%M:%S.000%z")


def format_worklog_comment(entry_id: Any, activity_name: Optional[str], description: Optional[str]) -> str:
    activity = activity_name or NO_ACTIVITY
    if not description or description == "0":
        description = NO_DESCRIPTION
    return f"#{entry_id}: {activity}: {description}"


def _extract_error_message(response: requests.Response) -> str:
    body = response.text or ""
    if not body:
        return "Empty response"
    try:
        data = response.json()
    except ValueError:
        return body
    if isinstance(data, dict):
        if isinstance(data.get("errorMessages"), list) and data["errorMessages"]:
            return ", ".join(str(m) for m in data["errorMessages"])
        if isinstance(data.get("errors"), dict) and data["errors"]:
            return ", ".join(str(m) for m in data["errors"].values())
    return body


class JiraGateway:
    """Jira REST client for one user on one ticket system"""

    def __init__(self, oauth_client: JiraOAuthClient, handshake: OAuthHandshake, timeout: float = 30.0):
        self.oauth_client = oauth_client
        self.handshake = handshake
        self.timeout = timeout

    @property
    def api_url(self) -> str:
        return (self.oauth_client.ticket_system.url or "").rstrip("/") + API_PATH

    def _raise_unauthorized(self, cause: Optional[Exception] = None) -> NoReturn:
        """Mint a fresh authorize URL and raise Unauthorized carrying it"""
        try:
            authorize_url = self.handshake.fetch_request_token()
        except HandshakeError as e:
            raise HandshakeError(f"Failed to fetch OAuth URL: {e.message}", 400) from e

        raise Unauthorized(
            f"401 - Unauthorized. Please authorize: {authorize_url}", authorize_url
        ) from cause

    def _session(self) -> requests.Session:
        token, secret = self.oauth_client.get_stored_tokens()
        # No access token yet, or the user never finished authorizing
        if (not token and not secret) or token == REQUEST_TOKEN_PLACEHOLDER:
            self._raise_unauthorized()
        return self.oauth_client.get_client(token, secret)

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        session = self._session()
        url = self.api_url + path.lstrip("/")
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if body is not None:
            kwargs["json"] = body

        try:
            response = session.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Jira request timed out: {method} {path}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Network error connecting to Jira: {e}") from e

        if response.status_code == 401:
            self._raise_unauthorized()
        if response.status_code == 404:
            raise ResourceNotFound(f"404 - Resource is not available: ({path})")
        if not response.ok:
            raise TransportError(
                f"Jira API error [{response.status_code}]: {_extract_error_message(response)}",
                response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON response from Jira: {e}", 500) from e

    def get(self, path: str) -> Any:
        return self._request("GET", path)

    def post(self, path: str, body: dict) -> Any:
        return self._request("POST", path, body)

    def put(self, path: str, body: dict) -> Any:
        return self._request("PUT", path, body)

    def delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    def _resource_status(self, path: str) -> ResourceStatus:
        try:
            self.get(path)
        except ResourceNotFound:
            return ResourceStatus.NOT_FOUND
        return ResourceStatus.FOUND

    def does_ticket_exist(self, ticket: str) -> ResourceStatus:
        return self._resource_status(f"issue/{ticket}")

    def does_worklog_exist(self, ticket: str, worklog_id: int) -> ResourceStatus:
        return self._resource_status(f"issue/{ticket}/worklog/{int(worklog_id)}")

    @staticmethod
    def build_worklog_body(comment: str, started: str, duration_seconds: int) -> dict:
        return {
            "comment": comment,
            "started": started,
            "timeSpentSeconds": duration_seconds,
        }

    def create_worklog(self, ticket: str, comment: str, started: str, duration_seconds: int) -> CreatedWorklog:
        data = self.post(
            f"issue/{ticket}/worklog",
            self.build_worklog_body(comment, started, duration_seconds),
        )
        return decode(CreatedWorklog, data)

    def update_worklog(self, ticket: str, worklog_id: int, comment: str, started: str, duration_seconds: int):
        self.put(
            f"issue/{ticket}/worklog/{int(worklog_id)}",
            self.build_worklog_body(comment, started, duration_seconds),
        )

    def delete_worklog(self, ticket: str, worklog_id: int) -> bool:
        """
        Delete a worklog.

        Returns:
            False when the worklog was already gone
        """
        try:
            self.delete(f"issue/{ticket}/worklog/{int(worklog_id)}")
        except ResourceNotFound:
            logger.info(f"Worklog {worklog_id} on {ticket} was already deleted")
            return False
        return True

    def get_issue(self, ticket: str) -> Issue:
        return decode(Issue, self.get(f"issue/{ticket}"))

    def create_ticket(self, project_key: str, summary: str, description: str) -> CreatedIssue:
        data = self.post(
            "issue/",
            {
                "fields": {
                    "project": {"key": project_key},
                    "summary": summary,
                    "description": description,
                    "issuetype": {"name": "Task"},
                }
            },
        )
        return decode(CreatedIssue, data)

    def search_tickets(self, jql: str, fields: list[str], limit: int = 1) -> SearchResult:
        """JQL search, always POSTed since long queries exceed URL limits"""
        data = self.post(
            "search/",
            {"jql": jql, "fields": fields, "maxResults": limit},
        )
        return decode(SearchResult, data)

    def get_subtickets(self, ticket: str) -> list[str]:
        """
        Keys of the subtasks of ticket.

        For epics this includes the issues linked to the epic and their
        subtasks. An unknown ticket has no subtickets.
        """
        try:
            issue = self.get_issue(ticket)
        except ResourceNotFound:
            return []

        subtickets = issue.subtask_keys
        if issue.is_epic:
            result = self.search_tickets(f'"Epic Link" = {ticket}', ["key", "subtasks"], 100)
            for epic_issue in result.issues:
                subtickets.append(epic_issue.key)
                subtickets.extend(epic_issue.subtask_keys)
        return subtickets
