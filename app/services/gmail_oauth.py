"""
Gmail OAuth 2.0 + Gmail API access

The web-application authorization-code flow is used:

1. GET /api/email/auth-url returns authorization_url() for the frontend
2. Google redirects back with ?code=..., the frontend POSTs it to
   /api/email/callback which calls exchange_code()
3. Tokens are stored on the EmailConnection row, and a GmailClient is
   built per import run from those tokens

Usage:
    from app.services.gmail_oauth import GmailClient

    client = GmailClient(access_token=connection.access_token)
    refs = client.search_candidates(since_date)
    for message_id, message in client.fetch_batch([r["id"] for r in refs]):
        ...
"""
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Any, Iterator, Tuple, Callable

import httplib2
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from app.core.config import settings

logger = logging.getLogger(__name__)

# Gmail API scopes
SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

SUPPORTED_PROVIDERS = ("gmail",)

# Default lifetime when Google does not report one
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

# Search query building blocks
SUBSCRIPTION_KEYWORDS = [
    "subscription", "receipt", "payment", "invoice", "billing",
    "renew", "membership", "monthly", "annual", "yearly",
]
SUBSCRIPTION_DOMAINS = [
    "netflix.com", "spotify.com", "amazon.com", "youtube.com", "disneyplus.com",
    "hulu.com", "apple.com", "adobe.com", "microsoft.com", "dropbox.com",
]


class UnsupportedProviderError(ValueError):
    """Raised for any mail provider other than gmail"""

    def __init__(self, provider: Optional[str]):
        self.provider = provider
        super().__init__(f"Unsupported email provider: {provider}")


class OAuthExchangeError(Exception):
    """Authorization code could not be exchanged for tokens"""


class TokenRefreshError(Exception):
    """Stored refresh token was rejected or is missing"""


@dataclass
class OAuthTokens:
    """Tokens returned by the code exchange or a refresh"""
    access_token: str
    refresh_token: Optional[str]
    expiry: datetime


def ensure_supported_provider(provider: Optional[str]) -> str:
    if provider not in SUPPORTED_PROVIDERS:
        raise UnsupportedProviderError(provider)
    return provider


def client_config() -> Dict[str, Any]:
    """OAuth client config in the client_secrets.json 'web' layout"""
    return {
        "web": {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "auth_uri": GOOGLE_AUTH_URI,
            "token_uri": GOOGLE_TOKEN_URI,
            "redirect_uris": [settings.GOOGLE_REDIRECT_URI],
        }
    }


def _build_flow(state: Optional[str] = None) -> Flow:
    # The code is exchanged by a different Flow instance, so no PKCE verifier
    return Flow.from_client_config(
        client_config(),
        scopes=SCOPES,
        state=state,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        autogenerate_code_verifier=False,
    )


def _expiry_or_default(expiry: Optional[datetime]) -> datetime:
    return expiry or datetime.utcnow() + timedelta(seconds=DEFAULT_TOKEN_LIFETIME_SECONDS)


def authorization_url(state: Optional[str] = None) -> str:
    """Consent URL with offline access so Google returns a refresh token"""
    flow = _build_flow(state)
    url, _ = flow.authorization_url(
        access_type="offline",
        prompt="consent",
        include_granted_scopes="true",
    )
    return url


def exchange_code(code: str) -> OAuthTokens:
    """Trade an authorization code for access and refresh tokens"""
    flow = _build_flow()
    try:
        flow.fetch_token(code=code)
    except Exception as e:
        logger.warning("OAuth code exchange failed: %s", e)
        raise OAuthExchangeError("Failed to exchange authorization code") from e

    credentials = flow.credentials
    return OAuthTokens(
        access_token=credentials.token,
        refresh_token=credentials.refresh_token,
        expiry=_expiry_or_default(credentials.expiry),
    )


def refresh_access_token(refresh_token: Optional[str]) -> OAuthTokens:
    """Get a new access token from a stored refresh token"""
    if not refresh_token:
        raise TokenRefreshError("No refresh token stored for this connection")

    credentials = Credentials(
        token=None,
        refresh_token=refresh_token,
        token_uri=GOOGLE_TOKEN_URI,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        scopes=SCOPES,
    )
    try:
        credentials.refresh(Request())
    except RefreshError as e:
        raise TokenRefreshError(str(e)) from e

    return OAuthTokens(
        access_token=credentials.token,
        refresh_token=credentials.refresh_token or refresh_token,
        expiry=_expiry_or_default(credentials.expiry),
    )


def build_query(since_date: date) -> str:
    """Gmail search query for likely subscription emails"""
    keywords = " OR ".join(SUBSCRIPTION_KEYWORDS)
    domains = " OR ".join(SUBSCRIPTION_DOMAINS)
    return f"after:{since_date.strftime('%Y/%m/%d')} (subject:({keywords}) OR from:({domains}))"


class GmailClient:
    """
    Gmail API client for one mailbox.

    Every HTTP call goes through an httplib2.Http with a timeout, so a hung
    request fails the call instead of the whole import.
    """

    def __init__(
        self,
        access_token: str,
        timeout: Optional[float] = None,
        max_results: Optional[int] = None,
        batch_size: Optional[int] = None,
        pause_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.credentials = Credentials(token=access_token)
        self.timeout = timeout or settings.MAIL_REQUEST_TIMEOUT_SECONDS
        self.max_results = max_results or settings.IMPORT_MAX_RESULTS
        self.batch_size = batch_size or settings.IMPORT_FETCH_BATCH_SIZE
        self.pause_seconds = settings.IMPORT_FETCH_PAUSE_SECONDS if pause_seconds is None else pause_seconds
        self._sleep = sleep
        self._service = None

    @property
    def service(self):
        """Build Gmail API service on first use"""
        if self._service is None:
            http = AuthorizedHttp(self.credentials, http=httplib2.Http(timeout=self.timeout))
            self._service = build("gmail", "v1", http=http, cache_discovery=False)
        return self._service

    def get_profile(self) -> Optional[str]:
        """Email address of the authorized mailbox"""
        profile = self.service.users().getProfile(userId="me").execute()
        return profile.get("emailAddress")

    def search_candidates(self, since_date: date) -> List[Dict[str, str]]:
        """
        Message refs ({id, threadId}) matching the subscription query.
        Only the first page is read.
        """
        results = self.service.users().messages().list(
            userId="me",
            q=build_query(since_date),
            maxResults=self.max_results
        ).execute()
        return results.get("messages", [])

    def fetch_full(self, message_id: str) -> Dict[str, Any]:
        return self.service.users().messages().get(
            userId="me",
            id=message_id,
            format="full"
        ).execute()

    def fetch_batch(self, message_ids: List[str]) -> Iterator[Tuple[str, Optional[Dict[str, Any]]]]:
        """
        Yield (message_id, message) in groups of batch_size with a pause
        between groups. A failed fetch yields (message_id, None).
        """
        for start in range(0, len(message_ids), self.batch_size):
            if start and self.pause_seconds:
                self._sleep(self.pause_seconds)

            for message_id in message_ids[start:start + self.batch_size]:
                try:
                    message = self.fetch_full(message_id)
                except Exception as e:
                    # One bad message never ends the batch
                    logger.warning("Failed to fetch message %s: %s", message_id, e, exc_info=True)
                    message = None
                yield message_id, message


def gmail_fetcher_factory(connection) -> GmailClient:
    """Build the fetcher used by the import orchestrator for a connection"""
    ensure_supported_provider(connection.provider)
    return GmailClient(access_token=connection.access_token)
