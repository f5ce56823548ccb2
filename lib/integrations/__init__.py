# KW OS - External Integrations

from .google_auth import GoogleAuth
from .gmail_client import GmailClient
from .calendar_client import CalendarClient

__all__ = [
    "GoogleAuth",
    "GmailClient",
    "CalendarClient",
]
