"""
Google OAuth 2.0 for per-user calendar access.

Implements the authorization code flow used to link a user's Google account:
1. Generate authorization URL → user redirected to Google
2. User grants permission → Google redirects back with code
3. Exchange code for tokens → access_token + refresh_token
4. Build Credentials from the stored tokens to call the Calendar API
5. Refresh the access token before it expires using the refresh_token
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import httpx
from google.oauth2.credentials import Credentials
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from calendar_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarAuthError,
    RefreshTokenInvalidError,
    TokenRefreshError,
)

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

# Calendar API scopes
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/userinfo.email",
]

# Token endpoint error codes meaning the grant itself is dead
INVALID_GRANT_ERRORS = {"invalid_grant", "unauthorized_client"}


@dataclass
class OAuthTokens:
    """OAuth token response from Google."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    token_type: str = "Bearer"
    scope: str = ""

    @property
    def expiry(self) -> datetime:
        """Calculate token expiry time."""
        return datetime.now(timezone.utc) + timedelta(seconds=self.expires_in)


@dataclass
class GoogleUserInfo:
    """User info from Google OAuth."""

    email: str
    id: Optional[str] = None
    name: Optional[str] = None


def get_oauth_credentials(
    access_token: str,
    refresh_token: Optional[str],
    client_id: str,
    client_secret: str,
    expiry: Optional[datetime] = None,
    scopes: Optional[list[str]] = None,
) -> Credentials:
    """
    Create credentials from a user's OAuth tokens.

    Args:
        access_token: Valid access token
        refresh_token: Refresh token of the connection
        client_id: OAuth client ID
        client_secret: OAuth client secret
        expiry: Access token expiry (google-auth expects naive UTC)
        scopes: OAuth scopes (optional)

    Returns:
        Google credentials object
    """
    if expiry is not None and expiry.tzinfo is not None:
        expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)

    return Credentials(
        token=access_token,
        refresh_token=refresh_token,
        token_uri=GOOGLE_TOKEN_URL,
        client_id=client_id,
        client_secret=client_secret,
        scopes=scopes or CALENDAR_SCOPES,
        expiry=expiry,
    )


def _error_code(response: httpx.Response) -> str:
    """Extract the OAuth ``error`` field from a token endpoint response."""
    try:
        payload = response.json()
    except ValueError:
        return ""
    if isinstance(payload, dict):
        return str(payload.get("error", ""))
    return ""


class GoogleOAuthFlow:
    """
    Manages the Google OAuth 2.0 flow.

    Usage:
        flow = GoogleOAuthFlow(client_id, client_secret, redirect_uri)

        # Step 1: Get authorization URL
        auth_url = flow.get_authorization_url(state="signed_state")
        # Redirect user to auth_url

        # Step 2: Handle callback with authorization code
        tokens = await flow.exchange_code(code)

        # Step 3: Get user info
        user_info = await flow.get_user_info(tokens.access_token)

        # Step 4: Refresh token when expired
        new_tokens = await flow.refresh_token(tokens.refresh_token)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._transport = transport

        if not self.client_id or not self.client_secret:
            logger.warning(
                "Google OAuth not configured. Set GOOGLE_OAUTH_CLIENT_ID and "
                "GOOGLE_OAUTH_CLIENT_SECRET in environment."
            )

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def get_authorization_url(self, state: str) -> str:
        """
        Generate the Google OAuth authorization URL.

        Args:
            state: Signed state token binding the callback to a user

        Returns:
            URL to redirect user to for authorization
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(CALENDAR_SCOPES),
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",  # Always show consent screen (ensures refresh token)
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _post_token(self, data: dict) -> dict:
        """
        POST to the token endpoint and classify failures.

        Raises:
            TokenRefreshError: Network error, 429 or 5xx (retryable)
            RefreshTokenInvalidError: Grant rejected (400/401, invalid_grant)
            GoogleCalendarAuthError: Any other client error
        """
        try:
            async with self._http_client() as client:
                response = await client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.TransportError as e:
            raise TokenRefreshError(
                f"Token endpoint unreachable: {e.__class__.__name__}",
                original_error=e,
            )

        status = response.status_code
        if status == 429 or status >= 500:
            raise TokenRefreshError(f"Token endpoint unavailable ({status})")

        if status >= 400:
            error_code = _error_code(response)
            if status in (400, 401) or error_code in INVALID_GRANT_ERRORS:
                raise RefreshTokenInvalidError(
                    f"Token endpoint rejected the grant ({status} {error_code})".strip()
                )
            raise GoogleCalendarAuthError(
                f"Token endpoint error ({status} {error_code})".strip()
            )

        return response.json()

    async def exchange_code(self, code: str) -> OAuthTokens:
        """
        Exchange authorization code for access and refresh tokens.

        Args:
            code: Authorization code from OAuth callback

        Returns:
            OAuthTokens with access_token and refresh_token

        Raises:
            GoogleCalendarAuthError: If the code is rejected
            TokenRefreshError: If the token endpoint is unavailable
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }

        try:
            token_data = await self._post_token(data)
        except RefreshTokenInvalidError as e:
            raise GoogleCalendarAuthError(
                "Authorization code was rejected",
                original_error=e,
            )

        logger.info("Successfully exchanged authorization code for tokens")

        return OAuthTokens(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_in=int(token_data.get("expires_in", 3600)),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope", ""),
        )

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        """
        Refresh an access token.

        Transient failures are retried with exponential backoff. A rejected
        grant is never retried.

        Args:
            refresh_token: The refresh token from initial authorization

        Returns:
            New OAuthTokens; refresh_token is the rotated one if Google
            issued a new one, otherwise the original

        Raises:
            RefreshTokenInvalidError: Refresh token revoked or expired
            TokenRefreshError: Retries exhausted on transient failures
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_seconds, max=10),
            retry=retry_if_exception_type(TokenRefreshError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                token_data = await self._post_token(data)

        logger.info("Successfully refreshed access token")

        return OAuthTokens(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token") or refresh_token,
            expires_in=int(token_data.get("expires_in", 3600)),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope", ""),
        )

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        """
        Get user info from Google using access token.

        Args:
            access_token: Valid OAuth access token

        Returns:
            GoogleUserInfo with the account email and ID

        Raises:
            GoogleCalendarAuthError: If the request fails
        """
        headers = {"Authorization": f"Bearer {access_token}"}

        try:
            async with self._http_client() as client:
                response = await client.get(GOOGLE_USERINFO_URL, headers=headers)
                response.raise_for_status()
                user_data = response.json()
        except httpx.HTTPError as e:
            raise GoogleCalendarAuthError(
                "Failed to fetch Google account info",
                original_error=e,
            )

        return GoogleUserInfo(
            email=user_data["email"],
            id=user_data.get("id"),
            name=user_data.get("name"),
        )
