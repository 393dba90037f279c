"""Tests for jira_gateway module."""

import re
from datetime import date, time
from unittest.mock import MagicMock

import pytest
import requests

from timetracker.exceptions import (
    DecodeError,
    HandshakeError,
    ResourceNotFound,
    TransportError,
    Unauthorized,
)
from timetracker.repositories import Credential
from timetracker.services.jira_gateway import (
    JiraGateway,
    ResourceStatus,
    format_worklog_comment,
    format_worklog_started,
)
from timetracker.services.oauth_client import JiraOAuthClient
from timetracker.services.oauth_handshake import OAuthHandshake

from conftest import FakeCredentialStore, make_response

API = "https://jira.example.com/rest/api/latest/"


@pytest.fixture
def oauth_client(ticket_system, credential_store, mock_session):
    client = JiraOAuthClient(ticket_system, 7, credential_store)
    client.get_client = MagicMock(return_value=mock_session)
    return client


@pytest.fixture
def handshake(oauth_client):
    return OAuthHandshake(oauth_client, "https://timetracker.example.com/jiraoauthcallback")


@pytest.fixture
def gateway(oauth_client, handshake):
    return JiraGateway(oauth_client, handshake, timeout=10.0)


class TestFormatting:
    """Tests for worklog field formatting."""

    def test_started_format(self):
        """Test date from day and hh:mm from start with a numeric offset."""
        started = format_worklog_started(date(2016, 2, 17), time(14, 35, 59))
        assert re.fullmatch(r"2016-02-17T14:35:00\.000[+-]\d{4}", started)

    def test_comment(self):
        assert format_worklog_comment(5, "Dev", "fix bug") == "#5: Dev: fix bug"

    def test_comment_defaults(self):
        assert format_worklog_comment(5, None, "") == "#5: no activity specified: no description given"
        assert format_worklog_comment(5, "Dev", "0") == "#5: Dev: no description given"

    def test_worklog_body(self):
        assert JiraGateway.build_worklog_body("c", "s", 60) == {
            "comment": "c",
            "started": "s",
            "timeSpentSeconds": 60,
        }


class TestRequestErrors:
    """Tests for HTTP error mapping."""

    def test_success_json(self, gateway, mock_session):
        mock_session.request.return_value = make_response(200, {"key": "ABC-1"})

        assert gateway.get("issue/ABC-1") == {"key": "ABC-1"}
        mock_session.request.assert_called_once_with("GET", API + "issue/ABC-1", timeout=10.0)

    def test_empty_body(self, gateway, mock_session):
        mock_session.request.return_value = make_response(204)
        assert gateway.delete("issue/ABC-1/worklog/1") == {}

    def test_json_body_sent(self, gateway, mock_session):
        mock_session.request.return_value = make_response(201, {"id": "1"})
        gateway.post("issue/", {"a": 1})

        mock_session.request.assert_called_once_with("POST", API + "issue/", timeout=10.0, json={"a": 1})

    def test_not_found(self, gateway, mock_session):
        mock_session.request.return_value = make_response(404, {"errorMessages": ["Issue does not exist"]})

        with pytest.raises(ResourceNotFound) as exc_info:
            gateway.get("issue/XYZ-9")

        assert exc_info.value.status_code == 404
        assert "(issue/XYZ-9)" in exc_info.value.message

    def test_server_error_message(self, gateway, mock_session):
        """Test Jira error messages are folded into the error."""
        mock_session.request.return_value = make_response(
            400, {"errorMessages": [], "errors": {"timeLogged": "You must indicate the time spent working."}}
        )

        with pytest.raises(TransportError) as exc_info:
            gateway.post("issue/ABC-1/worklog", {})

        assert exc_info.value.status_code == 400
        assert "You must indicate the time spent working." in exc_info.value.message

    def test_timeout(self, gateway, mock_session):
        mock_session.request.side_effect = requests.exceptions.Timeout()

        with pytest.raises(TransportError, match="timed out"):
            gateway.get("issue/ABC-1")

    def test_connection_error(self, gateway, mock_session):
        mock_session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TransportError, match="Network error"):
            gateway.get("issue/ABC-1")

    def test_invalid_json(self, gateway, mock_session):
        mock_session.request.return_value = make_response(200, text="<html>")

        with pytest.raises(TransportError, match="Invalid JSON"):
            gateway.get("issue/ABC-1")


class TestUnauthorized:
    """Tests for the 401 path, which starts a new OAuth handshake."""

    def test_401_raises_with_authorize_url(self, gateway, mock_session):
        """Test a 401 yields Unauthorized carrying a fresh authorize URL."""
        mock_session.request.return_value = make_response(401, text="")
        mock_session.post.return_value = make_response(
            200, text="oauth_token=req-token&oauth_token_secret=req-secret"
        )

        with pytest.raises(Unauthorized) as exc_info:
            gateway.get("issue/ABC-1")

        url = exc_info.value.redirect_url
        assert url.startswith("https://jira.example.com/plugins/servlet/oauth/authorize?oauth_token=")
        assert url.endswith("req-token")
        assert exc_info.value.status_code == 401
        assert url in exc_info.value.message

    def test_no_stored_tokens(self, ticket_system, mock_session):
        """Test no request is sent to the API without stored tokens."""
        client = JiraOAuthClient(ticket_system, 7, FakeCredentialStore())
        client.get_client = MagicMock(return_value=mock_session)
        gateway = JiraGateway(client, OAuthHandshake(client, "https://tt/cb"))
        mock_session.post.return_value = make_response(200, text="oauth_token=t&oauth_token_secret=s")

        with pytest.raises(Unauthorized):
            gateway.get("issue/ABC-1")

        mock_session.request.assert_not_called()

    def test_pending_request_token(self, ticket_system, mock_session):
        """Test an unfinished authorization is not sent to the API as an access token."""
        store = FakeCredentialStore({(7, 3): Credential("token_request_unfinished", "req-secret")})
        client = JiraOAuthClient(ticket_system, 7, store)
        client.get_client = MagicMock(return_value=mock_session)
        gateway = JiraGateway(client, OAuthHandshake(client, "https://tt/cb"))
        mock_session.post.return_value = make_response(200, text="oauth_token=t&oauth_token_secret=s")

        with pytest.raises(Unauthorized):
            gateway.get("issue/ABC-1")

        mock_session.request.assert_not_called()

    def test_handshake_failure(self, gateway, mock_session):
        """Test a failing request token fetch is reported as a 400 handshake error."""
        mock_session.request.return_value = make_response(401, text="")
        mock_session.post.return_value = make_response(200, text="oauth_problem=consumer_key_unknown")

        with pytest.raises(HandshakeError) as exc_info:
            gateway.get("issue/ABC-1")

        assert exc_info.value.status_code == 400
        assert exc_info.value.message.startswith("Failed to fetch OAuth URL")


class TestExistenceChecks:
    """Tests for does_ticket_exist and does_worklog_exist."""

    def test_ticket_found(self, gateway, mock_session):
        mock_session.request.return_value = make_response(200, {"key": "ABC-1"})
        assert gateway.does_ticket_exist("ABC-1") is ResourceStatus.FOUND

    def test_ticket_not_found(self, gateway, mock_session):
        mock_session.request.return_value = make_response(404, {})
        status = gateway.does_ticket_exist("XYZ-9")

        assert status is ResourceStatus.NOT_FOUND
        assert not status

    def test_worklog_path(self, gateway, mock_session):
        mock_session.request.return_value = make_response(200, {"id": "42"})

        assert gateway.does_worklog_exist("ABC-1", 42)
        mock_session.request.assert_called_once_with("GET", API + "issue/ABC-1/worklog/42", timeout=10.0)

    def test_other_errors_propagate(self, gateway, mock_session):
        mock_session.request.return_value = make_response(500, text="down")

        with pytest.raises(TransportError):
            gateway.does_ticket_exist("ABC-1")


class TestWorklogs:
    """Tests for worklog operations."""

    def test_create(self, gateway, mock_session):
        mock_session.request.return_value = make_response(
            201, {"id": "10042", "issueId": "10001", "timeSpentSeconds": 5400}
        )

        created = gateway.create_worklog("ABC-1", "#5: Dev: fix bug", "2024-03-14T09:00:00.000+0000", 5400)

        assert created.id == 10042
        mock_session.request.assert_called_once_with(
            "POST",
            API + "issue/ABC-1/worklog",
            timeout=10.0,
            json={
                "comment": "#5: Dev: fix bug",
                "started": "2024-03-14T09:00:00.000+0000",
                "timeSpentSeconds": 5400,
            },
        )

    def test_create_unexpected_payload(self, gateway, mock_session):
        mock_session.request.return_value = make_response(201, {"self": "no id"})

        with pytest.raises(DecodeError):
            gateway.create_worklog("ABC-1", "c", "s", 60)

    def test_update(self, gateway, mock_session):
        mock_session.request.return_value = make_response(200, {"id": "42"})

        gateway.update_worklog("ABC-1", 42, "c", "s", 60)

        args, kwargs = mock_session.request.call_args
        assert args == ("PUT", API + "issue/ABC-1/worklog/42")
        assert kwargs["json"]["timeSpentSeconds"] == 60

    def test_delete(self, gateway, mock_session):
        mock_session.request.return_value = make_response(204)
        assert gateway.delete_worklog("ABC-1", 42) is True

    def test_delete_already_gone(self, gateway, mock_session):
        mock_session.request.return_value = make_response(404, {})
        assert gateway.delete_worklog("ABC-1", 42) is False


class TestIssues:
    """Tests for ticket operations."""

    def test_create_ticket(self, gateway, mock_session):
        mock_session.request.return_value = make_response(201, {"id": "10002", "key": "WEB-7"})

        created = gateway.create_ticket("WEB", "Summary", "Description")

        assert created.key == "WEB-7"
        body = mock_session.request.call_args.kwargs["json"]
        assert body["fields"]["project"] == {"key": "WEB"}
        assert body["fields"]["issuetype"] == {"name": "Task"}

    def test_search(self, gateway, mock_session):
        mock_session.request.return_value = make_response(
            200, {"issues": [{"key": "ABC-1"}], "total": 1, "maxResults": 5}
        )

        result = gateway.search_tickets("project = ABC", ["key"], 5)

        assert [i.key for i in result.issues] == ["ABC-1"]
        assert result.max_results == 5
        assert mock_session.request.call_args.kwargs["json"] == {
            "jql": "project = ABC", "fields": ["key"], "maxResults": 5,
        }

    def test_subtickets(self, gateway, mock_session):
        mock_session.request.return_value = make_response(200, {
            "key": "ABC-1",
            "fields": {"issuetype": {"name": "Story"}, "subtasks": [{"key": "ABC-2"}, {"key": "ABC-3"}]},
        })

        assert gateway.get_subtickets("ABC-1") == ["ABC-2", "ABC-3"]

    def test_epic_subtickets(self, gateway, mock_session):
        """Test issues linked to an epic and their subtasks are included."""
        mock_session.request.side_effect = [
            make_response(200, {"key": "ABC-1", "fields": {"issuetype": {"name": "Epic"}, "subtasks": []}}),
            make_response(200, {"issues": [
                {"key": "ABC-5", "fields": {"subtasks": [{"key": "ABC-6"}]}},
                {"key": "ABC-7", "fields": {"subtasks": []}},
            ]}),
        ]

        assert gateway.get_subtickets("ABC-1") == ["ABC-5", "ABC-6", "ABC-7"]
        search = mock_session.request.call_args_list[1]
        assert search.kwargs["json"]["jql"] == '"Epic Link" = ABC-1'
        assert search.kwargs["json"]["maxResults"] == 100

    def test_subtickets_unknown_ticket(self, gateway, mock_session):
        mock_session.request.return_value = make_response(404, {})
        assert gateway.get_subtickets("NOPE-1") == []
