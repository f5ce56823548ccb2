"""
Google OAuth for the Gmail, People and Calendar clients.

Reads an OAuth client file (``installed`` or ``web`` section) and an
authorized-user token file. Both default to the knowledge base's .data
directory and can be moved with GMAIL_CREDENTIALS_PATH / GMAIL_TOKEN_PATH.
"""

import json
import logging
from pathlib import Path

from lib import config, paths
from lib.errors import BadRequestError, KnowledgeBaseNotConfigured, PreconditionFailedError

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.labels",
    "https://www.googleapis.com/auth/contacts.readonly",
    "https://www.googleapis.com/auth/calendar.readonly",
]

CREDENTIALS_FILE = "gmail-credentials.json"
TOKEN_FILE = "gmail-tokens.json"
PENDING_FILE = "gmail-oauth-pending.json"


def _default_path(filename: str) -> Path | None:
    try:
        return paths.knowledge_base_path() / ".data" / filename
    except KnowledgeBaseNotConfigured:
        return None


class GoogleAuth:
    """Credential loading, refresh and the one-time consent flow."""

    def __init__(
        self,
        credentials_path: str | Path | None = None,
        token_path: str | Path | None = None,
        scopes: list[str] | None = None,
    ):
        """
        Args:
            credentials_path: OAuth client JSON. Falls back to config, then the KB default.
            token_path: Authorized-user token JSON. Same fallback order.
            scopes: Scopes requested during consent. Defaults to SCOPES.
        """
        self._credentials_path = credentials_path or config.GMAIL_CREDENTIALS_PATH
        self._token_path = token_path or config.GMAIL_TOKEN_PATH
        self.scopes = scopes or list(SCOPES)
        self._creds = None

    @property
    def credentials_path(self) -> Path | None:
        if self._credentials_path:
            return Path(self._credentials_path)
        return _default_path(CREDENTIALS_FILE)

    @property
    def token_path(self) -> Path | None:
        if self._token_path:
            return Path(self._token_path)
        return _default_path(TOKEN_FILE)

    @property
    def pending_path(self) -> Path | None:
        """PKCE verifier and state kept between the consent URL and the code exchange."""
        path = self.token_path
        return path.with_name(PENDING_FILE) if path else None

    def has_credentials(self) -> bool:
        path = self.credentials_path
        return path is not None and path.exists()

    def has_tokens(self) -> bool:
        path = self.token_path
        return path is not None and path.exists()

    def is_configured(self) -> bool:
        return self.has_credentials() and self.has_tokens()

    def load_client_config(self) -> dict:
        """
        Read the OAuth client file.

        Raises:
            PreconditionFailedError if the file is missing.
            BadRequestError if it has neither an ``installed`` nor a ``web`` section.
        """
        if not self.has_credentials():
            raise PreconditionFailedError(
                f"Google credentials not found at {self.credentials_path}. "
                "Download an OAuth client file from the Google Cloud console."
            )
        with open(self.credentials_path) as f:
            data = json.load(f)
        if not isinstance(data, dict) or not (data.get("installed") or data.get("web")):
            raise BadRequestError("Credentials file must contain an 'installed' or 'web' client")
        return data

    def _save(self, creds) -> None:
        path = self.token_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(creds.to_json())

    def credentials(self):
        """
        Authorized credentials, refreshed and saved when expired.

        Returns None when not configured or when the refresh is refused.
        """
        if self._creds is not None and self._creds.valid:
            return self._creds
        if not self.is_configured():
            return None

        from google.auth.exceptions import RefreshError
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials

        try:
            creds = Credentials.from_authorized_user_file(str(self.token_path))
        except (OSError, ValueError) as e:
            logger.warning("Unreadable Google token file %s: %s", self.token_path, e)
            return None

        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except RefreshError as e:
                logger.warning("Google token refresh failed: %s", e)
                return None
            self._save(creds)
            logger.info("Refreshed Google token")

        if not creds.valid:
            return None
        self._creds = creds
        return creds

    def build(self, service: str, version: str):
        """API resource for *service*, or None when not authenticated."""
        creds = self.credentials()
        if creds is None:
            return None

        from googleapiclient.discovery import build

        return build(service, version, credentials=creds, cache_discovery=False)

    def clear_cache(self) -> None:
        self._creds = None

    # ============================================================
    # Consent flow
    # ============================================================

    def _flow(self, code_verifier: str | None = None, state: str | None = None):
        from google_auth_oauthlib.flow import Flow

        client_config = self.load_client_config()
        section = client_config.get("installed") or client_config.get("web")
        redirect_uris = section.get("redirect_uris") or ["http://localhost"]
        return Flow.from_client_config(
            client_config,
            scopes=self.scopes,
            redirect_uri=redirect_uris[0],
            code_verifier=code_verifier,
            state=state,
        )

    def _load_pending(self) -> dict:
        path = self.pending_path
        if path is None or not path.exists():
            raise PreconditionFailedError("No consent in progress. Request an authorization URL first.")
        try:
            return json.loads(path.read_text())
        except (OSError, ValueError) as e:
            raise PreconditionFailedError(f"Unreadable consent state at {path}: {e}") from e

    def get_auth_url(self) -> str:
        """URL the user opens to grant access. Offline access so a refresh token is issued."""
        path = self.pending_path
        if path is None:
            raise PreconditionFailedError("No token location configured. Set KNOWLEDGE_BASE_PATH or GMAIL_TOKEN_PATH.")
        flow = self._flow()
        url, state = flow.authorization_url(access_type="offline", prompt="consent")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"code_verifier": flow.code_verifier, "state": state}))
        return url

    def exchange_code(self, code: str) -> dict:
        """Trade the consent code for tokens and save them."""
        if not code:
            raise BadRequestError("Authorization code is required")
        pending = self._load_pending()
        flow = self._flow(code_verifier=pending.get("code_verifier"), state=pending.get("state"))
        flow.fetch_token(code=code)
        creds = flow.credentials
        self._save(creds)
        self.pending_path.unlink(missing_ok=True)
        self._creds = creds
        logger.info("Saved Google tokens to %s", self.token_path)
        return {"token_path": str(self.token_path), "scopes": list(creds.scopes or self.scopes)}
