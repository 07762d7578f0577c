"""
Xero OAuth 2.0 client
Consent URL, code exchange, refresh, revocation and tenant discovery
"""

import base64
import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from ...config import (
    XERO_CLIENT_ID,
    XERO_CLIENT_SECRET,
    XERO_HTTP_TIMEOUT,
    XERO_REDIRECT_URI,
    XERO_SCOPES,
)
from .errors import TokenExchangeFailed, TokenRefreshFailed, XeroApiError, XeroReconnectRequired

logger = logging.getLogger(__name__)

XERO_AUTHORIZE_URL = "https://login.xero.com/identity/connect/authorize"
XERO_TOKEN_URL = "https://identity.xero.com/connect/token"
XERO_REVOKE_URL = "https://identity.xero.com/connect/revocation"
XERO_CONNECTIONS_URL = "https://api.xero.com/connections"


class XeroOAuthClient:
    """Talks to the Xero identity server. Holds no token state."""

    def __init__(
        self,
        client_id: str = XERO_CLIENT_ID,
        client_secret: str = XERO_CLIENT_SECRET,
        redirect_uri: str = XERO_REDIRECT_URI,
        scopes: Optional[list[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = XERO_HTTP_TIMEOUT,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes or XERO_SCOPES
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    def _basic_auth_header(self) -> str:
        credentials = f"{self.client_id}:{self.client_secret}"
        return base64.b64encode(credentials.encode()).decode()

    def build_consent_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{XERO_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        """Exchange an authorization code for a token response"""
        try:
            async with self._client() as client:
                response = await client.post(
                    XERO_TOKEN_URL,
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/x-www-form-urlencoded",
                        "Authorization": f"Basic {self._basic_auth_header()}",
                    },
                    data={
                        "grant_type": "authorization_code",
                        "code": code,
                        "redirect_uri": self.redirect_uri,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Xero token request failed: {str(e)}")
            raise TokenExchangeFailed(f"Token request failed: {str(e)}") from e

        if response.status_code != 200:
            logger.error(f"❌ Xero token exchange failed: {response.status_code} {response.text}")
            raise TokenExchangeFailed(
                f"Token request failed: {response.status_code}", details=_response_body(response)
            )

        token_data = _json_or_none(response)
        if not isinstance(token_data, dict):
            raise TokenExchangeFailed("Invalid token response from Xero")
        if not token_data.get("access_token"):
            raise TokenExchangeFailed("Invalid token set: missing access_token")
        if not token_data.get("refresh_token"):
            raise TokenExchangeFailed("Invalid token set: missing refresh_token")

        return token_data

    async def refresh(self, refresh_token: str) -> dict:
        """Trade a refresh token for a new token response"""
        try:
            async with self._client() as client:
                response = await client.post(
                    XERO_TOKEN_URL,
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/x-www-form-urlencoded",
                        "Authorization": f"Basic {self._basic_auth_header()}",
                    },
                    data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                )
        except httpx.HTTPError as e:
            raise TokenRefreshFailed(f"Token refresh request failed: {str(e)}") from e

        if response.status_code != 200:
            logger.error(f"Token refresh failed: {response.text}")
            raise TokenRefreshFailed(
                f"Token refresh failed: {response.status_code}", details=_response_body(response)
            )

        token_data = _json_or_none(response)
        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            raise TokenRefreshFailed("Invalid refresh response from Xero")
        return token_data

    async def revoke(self, token: str, token_type_hint: str = "access_token") -> bool:
        """Revoke a token. Returns whether Xero accepted the revocation."""
        try:
            async with self._client() as client:
                response = await client.post(
                    XERO_REVOKE_URL,
                    headers={
                        "Content-Type": "application/x-www-form-urlencoded",
                        "Authorization": f"Basic {self._basic_auth_header()}",
                    },
                    data={"token": token, "token_type_hint": token_type_hint},
                )
        except httpx.HTTPError as e:
            raise XeroApiError(f"Token revocation request failed: {str(e)}") from e
        return response.status_code == 200

    async def get_connections(self, access_token: str) -> list[dict]:
        """List the organisations this token can reach"""
        try:
            async with self._client() as client:
                response = await client.get(
                    XERO_CONNECTIONS_URL,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise XeroApiError(f"Failed to get tenants: {str(e)}") from e

        if response.status_code == 401:
            raise XeroReconnectRequired()
        if response.status_code != 200:
            raise XeroApiError(
                f"Failed to get tenants: {response.status_code}",
                details=_response_body(response),
                remote_status=response.status_code,
            )

        tenants = _json_or_none(response)
        return tenants if isinstance(tenants, list) else []


def _json_or_none(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None


def _response_body(response: httpx.Response):
    body = _json_or_none(response)
    return body if body is not None else response.text
