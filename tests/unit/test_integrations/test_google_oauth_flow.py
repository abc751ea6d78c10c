"""Tests for the Google OAuth authorization code flow."""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from calendar_sync.integrations.google_calendar.auth import (
    CALENDAR_SCOPES,
    GOOGLE_TOKEN_URL,
    GoogleOAuthFlow,
    OAuthTokens,
    get_oauth_credentials,
)
from calendar_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarAuthError,
    RefreshTokenInvalidError,
    TokenRefreshError,
)


class TokenEndpoint:
    """Scripted token endpoint for httpx.MockTransport."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    def form(self, index: int = 0) -> dict:
        parsed = parse_qs(self.requests[index].content.decode())
        return {key: values[0] for key, values in parsed.items()}


def make_flow(endpoint: TokenEndpoint) -> GoogleOAuthFlow:
    return GoogleOAuthFlow(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="https://sync.example.com/integrations/google-calendar/callback",
        max_attempts=3,
        backoff_seconds=0,
        transport=httpx.MockTransport(endpoint),
    )


def token_response(**overrides) -> httpx.Response:
    payload = {"access_token": "new-access", "expires_in": 3600, "token_type": "Bearer"}
    payload.update(overrides)
    return httpx.Response(200, json=payload)


class TestAuthorizationUrl:
    def test_requests_offline_access(self):
        flow = make_flow(TokenEndpoint(token_response()))

        url = flow.get_authorization_url(state="signed-state")
        params = parse_qs(urlparse(url).query)

        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert params["state"] == ["signed-state"]
        assert params["client_id"] == ["client-id"]
        assert params["scope"] == [" ".join(CALENDAR_SCOPES)]


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_success(self):
        endpoint = TokenEndpoint(token_response(refresh_token="refresh-1"))
        flow = make_flow(endpoint)

        tokens = await flow.exchange_code("auth-code")

        assert tokens.access_token == "new-access"
        assert tokens.refresh_token == "refresh-1"
        assert str(endpoint.requests[0].url) == GOOGLE_TOKEN_URL
        form = endpoint.form()
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "auth-code"

    @pytest.mark.asyncio
    async def test_rejected_code(self):
        flow = make_flow(TokenEndpoint(httpx.Response(400, json={"error": "invalid_grant"})))

        with pytest.raises(GoogleCalendarAuthError):
            await flow.exchange_code("used-code")


class TestRefreshToken:
    """Refresh classification and retries."""

    @pytest.mark.asyncio
    async def test_keeps_refresh_token_when_not_rotated(self):
        endpoint = TokenEndpoint(token_response())
        tokens = await make_flow(endpoint).refresh_token("refresh-1")

        assert tokens.access_token == "new-access"
        assert tokens.refresh_token == "refresh-1"
        assert endpoint.form()["grant_type"] == "refresh_token"

    @pytest.mark.asyncio
    async def test_returns_rotated_refresh_token(self):
        endpoint = TokenEndpoint(token_response(refresh_token="refresh-2"))
        tokens = await make_flow(endpoint).refresh_token("refresh-1")

        assert tokens.refresh_token == "refresh-2"

    @pytest.mark.asyncio
    async def test_invalid_grant_is_terminal(self):
        """A revoked grant raises immediately, without retrying."""
        endpoint = TokenEndpoint(
            httpx.Response(400, json={"error": "invalid_grant", "error_description": "Token has been revoked."})
        )

        with pytest.raises(RefreshTokenInvalidError):
            await make_flow(endpoint).refresh_token("revoked")

        assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_unauthorized_client_is_terminal(self):
        endpoint = TokenEndpoint(httpx.Response(401, json={"error": "unauthorized_client"}))

        with pytest.raises(RefreshTokenInvalidError):
            await make_flow(endpoint).refresh_token("refresh-1")

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        endpoint = TokenEndpoint(
            httpx.Response(503),
            httpx.Response(429),
            token_response(),
        )

        tokens = await make_flow(endpoint).refresh_token("refresh-1")

        assert tokens.access_token == "new-access"
        assert len(endpoint.requests) == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        endpoint = TokenEndpoint(httpx.Response(500))

        with pytest.raises(TokenRefreshError):
            await make_flow(endpoint).refresh_token("refresh-1")

        assert len(endpoint.requests) == 3

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        endpoint = TokenEndpoint(httpx.ConnectError("unreachable"))

        with pytest.raises(TokenRefreshError):
            await make_flow(endpoint).refresh_token("refresh-1")

        assert len(endpoint.requests) == 3

    @pytest.mark.asyncio
    async def test_other_client_error(self):
        endpoint = TokenEndpoint(httpx.Response(403, json={"error": "access_denied"}))

        with pytest.raises(GoogleCalendarAuthError) as exc_info:
            await make_flow(endpoint).refresh_token("refresh-1")

        assert not isinstance(exc_info.value, RefreshTokenInvalidError)


class TestUserInfo:
    @pytest.mark.asyncio
    async def test_success(self):
        endpoint = TokenEndpoint(
            httpx.Response(200, json={"email": "user@example.com", "id": "g-123", "name": "User"})
        )

        info = await make_flow(endpoint).get_user_info("access")

        assert info.email == "user@example.com"
        assert info.id == "g-123"
        assert endpoint.requests[0].headers["Authorization"] == "Bearer access"

    @pytest.mark.asyncio
    async def test_failure(self):
        endpoint = TokenEndpoint(httpx.Response(401, json={"error": "invalid_token"}))

        with pytest.raises(GoogleCalendarAuthError):
            await make_flow(endpoint).get_user_info("expired")


class TestCredentials:
    def test_tokens_expiry(self):
        tokens = OAuthTokens(access_token="a", refresh_token="r", expires_in=3600)
        expected = datetime.now(timezone.utc) + timedelta(hours=1)
        assert abs((tokens.expiry - expected).total_seconds()) < 5

    def test_expiry_converted_to_naive_utc(self):
        expiry = datetime(2025, 1, 5, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        credentials = get_oauth_credentials(
            access_token="access",
            refresh_token="refresh",
            client_id="client-id",
            client_secret="client-secret",
            expiry=expiry,
        )

        assert credentials.token == "access"
        assert credentials.refresh_token == "refresh"
        assert credentials.expiry == datetime(2025, 1, 5, 10, 0)
        assert credentials.scopes == CALENDAR_SCOPES
