"""
Gmail API Router.

Inbox reads, light triage and contact lookup for the signed-in Google
account, plus the one-time OAuth consent endpoints.
"""

from fastapi import APIRouter, Depends, Query

from api.request_models import AuthCodeBody
from api.response_models import IntegrationStatus
from lib.integrations import GmailClient, GoogleAuth

gmail_router = APIRouter(prefix="/gmail", tags=["Gmail"])


def get_gmail() -> GmailClient:
    return GmailClient()


@gmail_router.get("/status", response_model=IntegrationStatus)
def gmail_status(gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.status()


@gmail_router.get("/auth-url")
def auth_url() -> dict:
    return {"url": GoogleAuth().get_auth_url()}


@gmail_router.post("/auth")
def exchange_code(body: AuthCodeBody) -> dict:
    return GoogleAuth().exchange_code(body.code)


@gmail_router.get("/messages")
def list_messages(
    q: str | None = None,
    label_ids: list[str] | None = Query(None),
    max_results: int = Query(20, ge=1, le=100),
    page_token: str | None = None,
    include_spam_trash: bool = False,
    gmail: GmailClient = Depends(get_gmail),
) -> dict:
    return gmail.list_messages(
        query=q,
        label_ids=label_ids,
        max_results=max_results,
        page_token=page_token,
        include_spam_trash=include_spam_trash,
    )


@gmail_router.get("/search")
def search_messages(
    q: str = Query(..., min_length=1),
    max_results: int = Query(20, ge=1, le=100),
    page_token: str | None = None,
    gmail: GmailClient = Depends(get_gmail),
) -> dict:
    return gmail.search(q, max_results=max_results, page_token=page_token)


@gmail_router.get("/labels")
def labels(gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.labels()


@gmail_router.get("/messages/{message_id}")
def get_message(message_id: str, gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.get(message_id)


@gmail_router.get("/threads/{thread_id}")
def get_thread(thread_id: str, gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.get_thread(thread_id)


@gmail_router.post("/messages/{message_id}/read")
def mark_as_read(message_id: str, gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.mark_as_read(message_id)


@gmail_router.post("/messages/{message_id}/unread")
def mark_as_unread(message_id: str, gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.mark_as_unread(message_id)


@gmail_router.post("/messages/{message_id}/archive")
def archive(message_id: str, gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.archive(message_id)


@gmail_router.post("/messages/{message_id}/trash")
def trash(message_id: str, gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.trash(message_id)


@gmail_router.post("/messages/{message_id}/untrash")
def untrash(message_id: str, gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.untrash(message_id)


# ==== Contacts ====


@gmail_router.get("/contacts/search")
def contacts_search(
    q: str = Query(..., min_length=1),
    max_results: int = Query(10, ge=1, le=30),
    gmail: GmailClient = Depends(get_gmail),
) -> dict:
    return gmail.contacts_search(q, max_results=max_results)


@gmail_router.get("/contacts")
def contacts_list(max_results: int = Query(20, ge=1, le=100), gmail: GmailClient = Depends(get_gmail)) -> dict:
    return gmail.contacts_list(max_results=max_results)
