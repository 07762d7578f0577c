"""Xero connection service - consent flow, callback handling and disconnect"""

import logging
from typing import Optional

from pydantic import ValidationError

from .errors import InvalidState, MissingCode, NoOrganizations, TokenExchangeFailed, XeroError
from .schemas import AuthUrlResponse, TokenSet, XeroStatusDetails, XeroStatusResponse
from .token_store import TokenStore

logger = logging.getLogger(__name__)


class XeroAuthService:
    """Drives the UNAUTHENTICATED -> AWAITING_CALLBACK -> AUTHENTICATED flow"""

    def __init__(self, store: TokenStore):
        self.store = store
        self.session = store.session
        self.oauth = store.oauth

    def get_auth_url(self) -> AuthUrlResponse:
        state = self.session.generate_state()
        auth_url = self.oauth.build_consent_url(state)
        logger.info("🔗 Generated Xero authorization URL")
        return AuthUrlResponse(authUrl=auth_url, state=state)

    async def handle_callback(self, code: Optional[str], state: Optional[str]) -> str:
        """
        Complete the authorization round trip.
        Returns the tenant id that became active.
        """
        if not self.session.verify_state(state):
            logger.warning("⚠️ Xero callback with unknown state")
            raise InvalidState()

        if not code:
            raise MissingCode()

        token_data = await self.oauth.exchange_code(code)
        try:
            token_set = TokenSet.model_validate(token_data)
        except ValidationError as e:
            raise TokenExchangeFailed("Invalid token set received from Xero") from e

        self.store.write(token_set)

        tenants = await self.oauth.get_connections(token_set.access_token)
        if not tenants:
            raise NoOrganizations()

        tenant_id = tenants[0].get("tenantId")
        if not tenant_id:
            raise NoOrganizations()

        self.store.set_tenant_id(tenant_id)
        self.session.mark_authenticated()
        logger.info(f"✅ Xero connected to tenant {tenant_id} ({tenants[0].get('tenantName', 'unknown')})")
        return tenant_id

    async def disconnect(self) -> int:
        """Revoke (best effort) and forget all stored credentials"""
        token_set = self.store.peek()
        if token_set is not None:
            try:
                revoked = await self.oauth.revoke(token_set.access_token)
                if not revoked:
                    logger.warning("⚠️ Xero did not accept token revocation")
            except XeroError as e:
                logger.warning(f"⚠️ Xero token revocation failed: {str(e)}")

        deleted = self.store.clear()
        logger.info("🔌 Xero disconnected")
        return deleted

    async def status(self) -> XeroStatusResponse:
        token_set = await self.store.read()
        tenant_id = self.store.get_tenant_id()

        has_access_token = bool(token_set and token_set.access_token)
        connected = has_access_token and bool(tenant_id)
        if connected:
            self.session.mark_authenticated()

        return XeroStatusResponse(
            connected=connected,
            tenantId=tenant_id,
            details=XeroStatusDetails(
                hasToken=token_set is not None,
                hasAccessToken=has_access_token,
                hasTenantId=bool(tenant_id),
                tokenExpiry=token_set.expiry_iso() if token_set else None,
            ),
        )
