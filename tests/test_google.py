"""
Tests for the Google integrations.

GoogleAuth runs against temp credential files; GmailClient and
CalendarClient run against MagicMock API resources. Nothing here talks
to Google.
"""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from lib import config
from lib.errors import BadRequestError, NotFoundError, PreconditionFailedError
from lib.integrations.calendar_client import CalendarClient, format_event
from lib.integrations.gmail_client import (
    GmailClient,
    format_contact,
    format_message_detail,
    parse_email_address,
    parse_email_addresses,
)
from lib.integrations.google_auth import GoogleAuth


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def _http_error(status: int) -> HttpError:
    return HttpError(MagicMock(status=status, reason="error"), b"")


MESSAGE = {
    "id": "m1",
    "threadId": "t1",
    "snippet": "Hi Bob",
    "labelIds": ["INBOX", "UNREAD"],
    "payload": {
        "mimeType": "multipart/alternative",
        "headers": [
            {"name": "From", "value": '"Alice Smith" <alice@acme.test>'},
            {"name": "To", "value": 'bob@acme.test, "Jones, Bob" <bob2@acme.test>'},
            {"name": "Subject", "value": "Kickoff"},
            {"name": "Date", "value": "Mon, 5 Jan 2026 09:00:00 +0000"},
        ],
        "parts": [
            {"mimeType": "text/plain", "body": {"data": _b64("hello")}},
            {
                "mimeType": "multipart/mixed",
                "parts": [
                    {"mimeType": "text/html", "body": {"data": _b64("<p>hello</p>")}},
                    {
                        "mimeType": "application/pdf",
                        "filename": "agenda.pdf",
                        "body": {"attachmentId": "att1", "size": 10},
                    },
                ],
            },
        ],
    },
}


# ============================================================
# GoogleAuth
# ============================================================


@pytest.fixture(autouse=True)
def no_configured_paths(monkeypatch):
    monkeypatch.setattr(config, "GMAIL_CREDENTIALS_PATH", None)
    monkeypatch.setattr(config, "GMAIL_TOKEN_PATH", None)


class TestGoogleAuth:
    def test_unconfigured_without_kb(self):
        """Without a KB or explicit paths there is nothing to load."""
        auth = GoogleAuth()
        assert auth.credentials_path is None
        assert auth.is_configured() is False
        assert auth.credentials() is None
        assert auth.build("gmail", "v1") is None

    def test_default_paths_under_kb(self, kb_root):
        """Files default to the KB's .data folder."""
        auth = GoogleAuth()
        assert auth.credentials_path == kb_root / ".data" / "gmail-credentials.json"
        assert auth.token_path == kb_root / ".data" / "gmail-tokens.json"

    def test_explicit_paths_win(self, tmp_path, kb_root):
        auth = GoogleAuth(credentials_path=tmp_path / "c.json", token_path=tmp_path / "t.json")
        assert auth.credentials_path == tmp_path / "c.json"
        assert auth.token_path == tmp_path / "t.json"

    def test_load_client_config(self, tmp_path):
        """Client files need an installed or web section."""
        path = tmp_path / "c.json"
        auth = GoogleAuth(credentials_path=path, token_path=tmp_path / "t.json")
        with pytest.raises(PreconditionFailedError):
            auth.load_client_config()

        path.write_text(json.dumps({"other": {}}))
        with pytest.raises(BadRequestError):
            auth.load_client_config()

        path.write_text(json.dumps({"installed": {"client_id": "id"}}))
        assert auth.load_client_config()["installed"]["client_id"] == "id"

    def test_exchange_code_requires_code(self, tmp_path):
        auth = GoogleAuth(credentials_path=tmp_path / "c.json", token_path=tmp_path / "t.json")
        with pytest.raises(BadRequestError):
            auth.exchange_code("")

    def test_consent_verifier_survives_between_instances(self, tmp_path):
        """The PKCE verifier from the consent URL is reused by a later exchange."""
        credentials_path = tmp_path / "c.json"
        token_path = tmp_path / "t.json"
        credentials_path.write_text(json.dumps({"installed": {"client_id": "id", "redirect_uris": ["http://localhost"]}}))

        flow = MagicMock(code_verifier="verifier-123")
        flow.authorization_url.return_value = ("https://accounts.test/auth", "state-9")
        flow.credentials.to_json.return_value = "{}"
        flow.credentials.scopes = ["scope-a"]

        with patch("google_auth_oauthlib.flow.Flow.from_client_config", return_value=flow) as make_flow:
            url = GoogleAuth(credentials_path=credentials_path, token_path=token_path).get_auth_url()
            assert url == "https://accounts.test/auth"
            pending = tmp_path / "gmail-oauth-pending.json"
            assert json.loads(pending.read_text()) == {"code_verifier": "verifier-123", "state": "state-9"}

            result = GoogleAuth(credentials_path=credentials_path, token_path=token_path).exchange_code("abc")

        assert make_flow.call_args.kwargs["code_verifier"] == "verifier-123"
        assert make_flow.call_args.kwargs["state"] == "state-9"
        flow.fetch_token.assert_called_once_with(code="abc")
        assert result == {"token_path": str(token_path), "scopes": ["scope-a"]}
        assert token_path.read_text() == "{}"
        assert not pending.exists()

    def test_exchange_without_consent_url(self, tmp_path):
        """Exchanging a code before requesting a URL is refused."""
        credentials_path = tmp_path / "c.json"
        credentials_path.write_text(json.dumps({"installed": {"client_id": "id"}}))
        auth = GoogleAuth(credentials_path=credentials_path, token_path=tmp_path / "t.json")
        with pytest.raises(PreconditionFailedError):
            auth.exchange_code("abc")

    def test_credentials_from_token_file(self, tmp_path):
        """A valid token file is loaded once and used to build services."""
        credentials_path = tmp_path / "c.json"
        token_path = tmp_path / "t.json"
        credentials_path.write_text(json.dumps({"installed": {"client_id": "id"}}))
        token_path.write_text(
            json.dumps(
                {
                    "token": "access",
                    "refresh_token": "refresh",
                    "client_id": "id",
                    "client_secret": "secret",
                    "expiry": "2099-01-01T00:00:00Z",
                }
            )
        )
        auth = GoogleAuth(credentials_path=credentials_path, token_path=token_path)
        creds = auth.credentials()
        assert creds.token == "access"
        assert auth.credentials() is creds

        with patch("googleapiclient.discovery.build") as build:
            auth.build("gmail", "v1")
        build.assert_called_once_with("gmail", "v1", credentials=creds, cache_discovery=False)

    def test_unreadable_token_file(self, tmp_path):
        """A token file missing required keys is treated as unauthenticated."""
        credentials_path = tmp_path / "c.json"
        token_path = tmp_path / "t.json"
        credentials_path.write_text(json.dumps({"installed": {}}))
        token_path.write_text(json.dumps({"token": "access"}))
        assert GoogleAuth(credentials_path=credentials_path, token_path=token_path).credentials() is None


# ============================================================
# Gmail formatting
# ============================================================


class TestGmailFormatting:
    def test_parse_email_address(self):
        """Quoted, unquoted and bare addresses are understood."""
        assert parse_email_address('"Alice Smith" <alice@acme.test>') == {
            "name": "Alice Smith",
            "email": "alice@acme.test",
        }
        assert parse_email_address("Alice <a@b.test>") == {"name": "Alice", "email": "a@b.test"}
        assert parse_email_address("a@b.test") == {"name": None, "email": "a@b.test"}
        assert parse_email_address("undisclosed") == {"name": None, "email": "undisclosed"}
        assert parse_email_address("") is None

    def test_parse_email_addresses_respects_quotes(self):
        """Commas inside quoted names do not split."""
        assert parse_email_addresses('bob@acme.test, "Jones, Bob" <bob2@acme.test>') == [
            {"name": None, "email": "bob@acme.test"},
            {"name": "Jones, Bob", "email": "bob2@acme.test"},
        ]

    def test_format_message_detail(self):
        """Bodies are found in nested parts; attachments are listed."""
        detail = format_message_detail(MESSAGE)
        assert detail["subject"] == "Kickoff"
        assert detail["from"]["name"] == "Alice Smith"
        assert detail["is_unread"] is True
        assert detail["body_text"] == "hello"
        assert detail["body_html"] == "<p>hello</p>"
        assert detail["attachments"] == [
            {"attachment_id": "att1", "filename": "agenda.pdf", "mime_type": "application/pdf", "size": 10}
        ]
        assert detail["has_attachments"] is True
        assert detail["headers"]["Subject"] == "Kickoff"
        assert detail["cc"] == []

    def test_format_contact(self):
        contact = format_contact(
            {
                "resourceName": "people/c1",
                "names": [{"displayName": "Dana Park"}],
                "emailAddresses": [{"value": "dana@x.test"}, {}],
                "organizations": [{"name": "Globex", "title": "CTO"}],
            }
        )
        assert contact == {
            "resource_name": "people/c1",
            "name": "Dana Park",
            "emails": ["dana@x.test"],
            "phones": [],
            "organization": "Globex",
            "job_title": "CTO",
        }


# ============================================================
# GmailClient
# ============================================================


@pytest.fixture
def gmail_service():
    return MagicMock()


@pytest.fixture
def gmail(gmail_service):
    auth = MagicMock()
    auth.build.return_value = gmail_service
    return GmailClient(auth=auth)


def _messages(service):
    return service.users.return_value.messages.return_value


class TestGmailClient:
    def test_list_messages_builds_query(self, gmail, gmail_service):
        """Label ids are ANDed onto the query and each hit is fetched."""
        messages = _messages(gmail_service)
        messages.list.return_value.execute.return_value = {
            "messages": [{"id": "m1"}],
            "nextPageToken": "next",
            "resultSizeEstimate": 1,
        }
        messages.get.return_value.execute.return_value = MESSAGE

        result = gmail.list_messages(query="is:unread", label_ids=["INBOX"])

        messages.list.assert_called_once_with(userId="me", maxResults=20, includeSpamTrash=False, q="is:unread label:INBOX")
        assert result["next_page_token"] == "next"
        assert [e["id"] for e in result["emails"]] == ["m1"]
        assert result["emails"][0]["to"][1]["name"] == "Jones, Bob"

    def test_get_missing_message(self, gmail, gmail_service):
        """A 404 from Gmail becomes NotFoundError."""
        _messages(gmail_service).get.return_value.execute.side_effect = _http_error(404)
        with pytest.raises(NotFoundError):
            gmail.get("nope")

    def test_other_http_errors_propagate(self, gmail, gmail_service):
        _messages(gmail_service).get.return_value.execute.side_effect = _http_error(500)
        with pytest.raises(HttpError):
            gmail.get("m1")

    def test_labels_system_first(self, gmail, gmail_service):
        gmail_service.users.return_value.labels.return_value.list.return_value.execute.return_value = {
            "labels": [
                {"id": "Label_1", "name": "projects", "type": "user"},
                {"id": "INBOX", "name": "INBOX", "type": "system"},
            ]
        }
        assert [label["id"] for label in gmail.labels()["labels"]] == ["INBOX", "Label_1"]

    def test_archive_removes_inbox_label(self, gmail, gmail_service):
        assert gmail.archive("m1") == {"id": "m1", "archived": True}
        _messages(gmail_service).modify.assert_called_once_with(
            userId="me", id="m1", body={"removeLabelIds": ["INBOX"]}
        )

    def test_mark_as_unread(self, gmail, gmail_service):
        gmail.mark_as_unread("m1")
        _messages(gmail_service).modify.assert_called_once_with(userId="me", id="m1", body={"addLabelIds": ["UNREAD"]})

    def test_contacts_scope_missing(self, gmail, gmail_service):
        """A 403 from the People API asks for re-authorization."""
        gmail_service.people.return_value.searchContacts.return_value.execute.side_effect = _http_error(403)
        with pytest.raises(PreconditionFailedError):
            gmail.contacts_search("dana")

    def test_status(self, gmail, gmail_service):
        gmail_service.users.return_value.getProfile.return_value.execute.return_value = {"emailAddress": "me@acme.test"}
        assert gmail.status() == {"configured": True, "authenticated": True, "email": "me@acme.test", "error": None}

    def test_status_unconfigured(self):
        auth = MagicMock()
        auth.is_configured.return_value = False
        auth.has_credentials.return_value = False
        status = GmailClient(auth=auth).status()
        assert status["configured"] is False
        assert status["error"] == "Gmail credentials not found. Run: kw google-auth"

    def test_unauthenticated_calls_fail(self):
        """Calls without credentials are precondition failures."""
        auth = MagicMock()
        auth.build.return_value = None
        with pytest.raises(PreconditionFailedError):
            GmailClient(auth=auth).list_messages()


# ============================================================
# Calendar
# ============================================================


@pytest.fixture
def calendar_service():
    return MagicMock()


@pytest.fixture
def calendar(calendar_service):
    auth = MagicMock()
    auth.build.return_value = calendar_service
    return CalendarClient(auth=auth)


class TestCalendar:
    def test_format_all_day_event(self):
        event = format_event({"id": "e1", "summary": "Offsite", "start": {"date": "2026-01-05"}, "end": {"date": "2026-01-06"}})
        assert event["is_all_day"] is True
        assert event["start"] == "2026-01-05"
        assert event["organizer"] is None
        assert event["attendees"] == []

    def test_format_timed_event(self):
        event = format_event(
            {
                "id": "e2",
                "start": {"dateTime": "2026-01-05T09:00:00Z"},
                "end": {"dateTime": "2026-01-05T10:00:00Z"},
                "organizer": {"email": "alice@acme.test", "self": True},
                "attendees": [{"email": "bob@acme.test", "responseStatus": "accepted"}],
            }
        )
        assert event["is_all_day"] is False
        assert event["start_date"] is None
        assert event["organizer"] == {"email": "alice@acme.test", "display_name": None, "self": True}
        assert event["attendees"][0]["response_status"] == "accepted"

    def test_list_events_drops_unset_params(self, calendar, calendar_service):
        """Only the bounds that were given are sent."""
        events = calendar_service.events.return_value
        events.list.return_value.execute.return_value = {"items": [{"id": "e1"}], "nextPageToken": None}
        result = calendar.list_events(time_min="2026-01-05T00:00:00Z")
        events.list.assert_called_once_with(
            calendarId="primary", singleEvents=True, orderBy="startTime", timeMin="2026-01-05T00:00:00Z", maxResults=50
        )
        assert [e["id"] for e in result["events"]] == ["e1"]

    def test_scope_missing(self, calendar, calendar_service):
        calendar_service.events.return_value.list.return_value.execute.side_effect = _http_error(403)
        with pytest.raises(PreconditionFailedError):
            calendar.search("standup")

    def test_get_missing_event(self, calendar, calendar_service):
        calendar_service.events.return_value.get.return_value.execute.side_effect = _http_error(404)
        with pytest.raises(NotFoundError):
            calendar.get("nope")

    def test_status(self, calendar, calendar_service):
        calendar_service.calendarList.return_value.get.return_value.execute.return_value = {"id": "me@acme.test"}
        assert calendar.status()["email"] == "me@acme.test"
