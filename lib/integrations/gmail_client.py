"""
Gmail Client - read access and light triage for the KW OS inbox view.

Lists, searches and reads messages, changes read/archive/trash state,
and looks up contacts through the People API. Message payloads are
flattened into plain dicts by the module-level formatters.
"""

import base64
import logging
import re

from googleapiclient.errors import HttpError

from lib.errors import NotFoundError, PreconditionFailedError
from lib.time_utils import now_iso

from .google_auth import GoogleAuth

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Gmail not configured. Run: kw google-auth"
CONTACTS_NOT_AUTHORIZED = "Contacts scope not authorized. Re-run kw google-auth to add contacts permission."
SUMMARY_HEADERS = ["From", "To", "Subject", "Date"]
CONTACT_FIELDS = "names,emailAddresses,phoneNumbers,organizations"

_NAMED_ADDRESS_RE = re.compile(r'^(?:"([^"]+)"|([^<>]+))?\s*<([^<>]+@[^<>]+)>$')
_PLAIN_ADDRESS_RE = re.compile(r"^([^\s@]+@[^\s@]+)$")
_ADDRESS_SPLIT_RE = re.compile(r',(?=(?:[^"]*"[^"]*")*[^"]*$)')


# ============================================================
# Formatting
# ============================================================


def parse_email_address(value: str | None) -> dict | None:
    """
    Parse one header address.

    Accepts '"Name" <a@b>', 'Name <a@b>' and a bare 'a@b'. Anything else
    is returned whole as the email.
    """
    if not value:
        return None
    value = value.strip()

    match = _NAMED_ADDRESS_RE.match(value)
    if match:
        name = (match.group(1) or match.group(2) or "").strip() or None
        return {"name": name, "email": match.group(3).strip()}

    match = _PLAIN_ADDRESS_RE.match(value)
    if match:
        return {"name": None, "email": match.group(1)}

    return {"name": None, "email": value}


def parse_email_addresses(value: str | None) -> list[dict]:
    """Split a To/Cc header on commas outside quotes."""
    if not value:
        return []
    parsed = (parse_email_address(part) for part in _ADDRESS_SPLIT_RE.split(value))
    return [a for a in parsed if a is not None]


def get_header(headers: list[dict] | None, name: str) -> str | None:
    wanted = name.lower()
    for header in headers or []:
        if (header.get("name") or "").lower() == wanted:
            return header.get("value") or None
    return None


def decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def extract_body(payload: dict | None, mime_type: str) -> str | None:
    """First body of *mime_type* in the payload, searching nested multiparts."""
    if not payload:
        return None

    data = (payload.get("body") or {}).get("data")
    if payload.get("mimeType") == mime_type and data:
        return decode_base64url(data)

    for part in payload.get("parts") or []:
        part_data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == mime_type and part_data:
            return decode_base64url(part_data)
        if part.get("parts"):
            nested = extract_body(part, mime_type)
            if nested:
                return nested
    return None


def extract_attachments(payload: dict | None) -> list[dict]:
    attachments: list[dict] = []

    def _visit(part: dict) -> None:
        body = part.get("body") or {}
        if part.get("filename") and body.get("attachmentId"):
            attachments.append(
                {
                    "attachment_id": body["attachmentId"],
                    "filename": part["filename"],
                    "mime_type": part.get("mimeType") or "application/octet-stream",
                    "size": body.get("size") or 0,
                }
            )
        for child in part.get("parts") or []:
            _visit(child)

    if payload:
        _visit(payload)
    return attachments


def format_message_summary(message: dict) -> dict:
    payload = message.get("payload") or {}
    headers = payload.get("headers")
    label_ids = message.get("labelIds") or []
    return {
        "id": message.get("id") or "",
        "thread_id": message.get("threadId") or "",
        "subject": get_header(headers, "Subject"),
        "from": parse_email_address(get_header(headers, "From")),
        "to": parse_email_addresses(get_header(headers, "To")),
        "date": get_header(headers, "Date") or now_iso(),
        "snippet": message.get("snippet") or None,
        "is_unread": "UNREAD" in label_ids,
        "label_ids": label_ids,
        "has_attachments": bool(extract_attachments(payload)),
    }


def format_message_detail(message: dict) -> dict:
    """Summary fields plus cc/bcc, reply-to, both bodies, attachments and every header."""
    payload = message.get("payload") or {}
    headers = payload.get("headers")
    attachments = extract_attachments(payload)
    return {
        **format_message_summary(message),
        "cc": parse_email_addresses(get_header(headers, "Cc")),
        "bcc": parse_email_addresses(get_header(headers, "Bcc")),
        "reply_to": parse_email_address(get_header(headers, "Reply-To")),
        "has_attachments": bool(attachments),
        "body_text": extract_body(payload, "text/plain"),
        "body_html": extract_body(payload, "text/html"),
        "attachments": attachments,
        "headers": {h["name"]: h["value"] for h in headers or [] if h.get("name") and h.get("value")},
    }


def format_label(label: dict) -> dict:
    return {
        "id": label.get("id") or "",
        "name": label.get("name") or "",
        "type": "system" if label.get("type") == "system" else "user",
        "messages_total": label.get("messagesTotal"),
        "messages_unread": label.get("messagesUnread"),
        "threads_total": label.get("threadsTotal"),
        "threads_unread": label.get("threadsUnread"),
    }


def format_contact(person: dict) -> dict:
    names = person.get("names") or []
    orgs = person.get("organizations") or []
    return {
        "resource_name": person.get("resourceName") or "",
        "name": names[0].get("displayName") if names else None,
        "emails": [e["value"] for e in person.get("emailAddresses") or [] if e.get("value")],
        "phones": [p["value"] for p in person.get("phoneNumbers") or [] if p.get("value")],
        "organization": orgs[0].get("name") if orgs else None,
        "job_title": orgs[0].get("title") if orgs else None,
    }


def http_status(error: HttpError) -> int:
    return int(getattr(error.resp, "status", 0) or 0)


# ============================================================
# Client
# ============================================================


class GmailClient:
    """Gmail and People API access for the signed-in user."""

    def __init__(self, auth: GoogleAuth | None = None):
        self.auth = auth or GoogleAuth()
        self._service = None
        self._people = None

    def _get_service(self):
        if self._service is None:
            self._service = self.auth.build("gmail", "v1")
            if self._service is None:
                raise PreconditionFailedError(NOT_CONFIGURED)
        return self._service

    def _get_people(self):
        if self._people is None:
            self._people = self.auth.build("people", "v1")
            if self._people is None:
                raise PreconditionFailedError(
                    "People API not configured. Re-run kw google-auth to add contacts scope."
                )
        return self._people

    def _messages(self):
        return self._get_service().users().messages()

    def authenticated_email(self) -> str | None:
        try:
            profile = self._get_service().users().getProfile(userId="me").execute()
        except (HttpError, PreconditionFailedError) as e:
            logger.warning("Gmail profile lookup failed: %s", e)
            return None
        return profile.get("emailAddress")

    def status(self) -> dict:
        if not self.auth.is_configured():
            error = (
                "Gmail credentials not found. Run: kw google-auth"
                if not self.auth.has_credentials()
                else "Gmail not authenticated. Run: kw google-auth"
            )
            return {"configured": False, "authenticated": False, "email": None, "error": error}

        email = self.authenticated_email()
        return {
            "configured": True,
            "authenticated": bool(email),
            "email": email,
            "error": None if email else "Failed to verify Gmail authentication",
        }

    # ============================================================
    # Messages
    # ============================================================

    def _summaries(self, response: dict) -> dict:
        emails = []
        for ref in response.get("messages") or []:
            if not ref.get("id"):
                continue
            full = (
                self._messages()
                .get(userId="me", id=ref["id"], format="metadata", metadataHeaders=SUMMARY_HEADERS)
                .execute()
            )
            emails.append(format_message_summary(full))
        return {
            "emails": emails,
            "next_page_token": response.get("nextPageToken"),
            "result_size_estimate": response.get("resultSizeEstimate"),
        }

    def list_messages(
        self,
        query: str | None = None,
        label_ids: list[str] | None = None,
        max_results: int = 20,
        page_token: str | None = None,
        include_spam_trash: bool = False,
    ) -> dict:
        """
        Message summaries matching a Gmail query.

        Args:
            query: Gmail search syntax, e.g. "is:unread from:alice".
            label_ids: Each becomes a "label:<id>" term ANDed onto the query.
            max_results: Page size.
            page_token: Token from a previous call's next_page_token.
            include_spam_trash: Include SPAM and TRASH.

        Returns:
            {"emails": [...], "next_page_token", "result_size_estimate"}
        """
        terms = [query] if query else []
        terms.extend(f"label:{label}" for label in label_ids or [])
        params = {"userId": "me", "maxResults": max_results, "includeSpamTrash": include_spam_trash}
        if terms:
            params["q"] = " ".join(terms)
        if page_token:
            params["pageToken"] = page_token
        return self._summaries(self._messages().list(**params).execute())

    def search(self, query: str, max_results: int = 20, page_token: str | None = None) -> dict:
        params = {"userId": "me", "q": query, "maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token
        return self._summaries(self._messages().list(**params).execute())

    def get(self, message_id: str) -> dict:
        try:
            message = self._messages().get(userId="me", id=message_id, format="full").execute()
        except HttpError as e:
            if http_status(e) == 404:
                raise NotFoundError(f"Email {message_id} not found") from e
            raise
        return format_message_detail(message)

    def get_thread(self, thread_id: str) -> dict:
        try:
            thread = (
                self._get_service().users().threads().get(userId="me", id=thread_id, format="full").execute()
            )
        except HttpError as e:
            if http_status(e) == 404:
                raise NotFoundError(f"Thread {thread_id} not found") from e
            raise
        return {
            "id": thread.get("id") or "",
            "messages": [format_message_detail(m) for m in thread.get("messages") or []],
            "snippet": thread.get("snippet") or None,
            "history_id": thread.get("historyId"),
        }

    def labels(self) -> dict:
        """System labels first, then user labels by name."""
        response = self._get_service().users().labels().list(userId="me").execute()
        labels = [format_label(label) for label in response.get("labels") or []]
        labels.sort(key=lambda label: (label["type"] != "system", label["name"].lower()))
        return {"labels": labels}

    def _modify(self, message_id: str, add: list[str] | None = None, remove: list[str] | None = None) -> None:
        body = {}
        if add:
            body["addLabelIds"] = add
        if remove:
            body["removeLabelIds"] = remove
        try:
            self._messages().modify(userId="me", id=message_id, body=body).execute()
        except HttpError as e:
            if http_status(e) == 404:
                raise NotFoundError(f"Email {message_id} not found") from e
            raise

    def mark_as_read(self, message_id: str) -> dict:
        self._modify(message_id, remove=["UNREAD"])
        return {"id": message_id, "marked_as_read": True}

    def mark_as_unread(self, message_id: str) -> dict:
        self._modify(message_id, add=["UNREAD"])
        return {"id": message_id, "marked_as_unread": True}

    def archive(self, message_id: str) -> dict:
        self._modify(message_id, remove=["INBOX"])
        logger.info("Archived email %s", message_id)
        return {"id": message_id, "archived": True}

    def trash(self, message_id: str) -> dict:
        try:
            self._messages().trash(userId="me", id=message_id).execute()
        except HttpError as e:
            if http_status(e) == 404:
                raise NotFoundError(f"Email {message_id} not found") from e
            raise
        logger.info("Trashed email %s", message_id)
        return {"id": message_id, "trashed": True}

    def untrash(self, message_id: str) -> dict:
        try:
            self._messages().untrash(userId="me", id=message_id).execute()
        except HttpError as e:
            if http_status(e) == 404:
                raise NotFoundError(f"Email {message_id} not found") from e
            raise
        return {"id": message_id, "untrashed": True}

    # ============================================================
    # Contacts
    # ============================================================

    def contacts_search(self, query: str, max_results: int = 10) -> dict:
        try:
            response = (
                self._get_people()
                .people()
                .searchContacts(query=query, pageSize=max_results, readMask=CONTACT_FIELDS)
                .execute()
            )
        except HttpError as e:
            if http_status(e) == 403:
                raise PreconditionFailedError(CONTACTS_NOT_AUTHORIZED) from e
            raise
        results = response.get("results") or []
        contacts = [format_contact(r["person"]) for r in results if r.get("person")]
        return {"contacts": contacts, "total_people": len(results)}

    def contacts_list(self, max_results: int = 20) -> dict:
        """Connections, most recently modified first."""
        try:
            response = (
                self._get_people()
                .people()
                .connections()
                .list(
                    resourceName="people/me",
                    pageSize=max_results,
                    personFields=CONTACT_FIELDS,
                    sortOrder="LAST_MODIFIED_DESCENDING",
                )
                .execute()
            )
        except HttpError as e:
            if http_status(e) == 403:
                raise PreconditionFailedError(CONTACTS_NOT_AUTHORIZED) from e
            raise
        contacts = [format_contact(p) for p in response.get("connections") or []]
        return {"contacts": contacts, "total_people": response.get("totalPeople") or len(contacts)}
