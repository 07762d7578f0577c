"""
Xero token store
Persists the single live TokenSet and the selected tenant, and refreshes
the access token when it is close to expiry.
"""

import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...security_utils import decrypt_token, encrypt_token
from .errors import XeroError
from .oauth import XeroOAuthClient
from .repository import XeroTokenRepository
from .schemas import TokenSet
from .session import XeroSession

logger = logging.getLogger(__name__)

# Refresh when the access token has less than this left
REFRESH_MARGIN_MS = 5 * 60 * 1000


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class TokenStore:
    """Read/write access to the persisted Xero credentials"""

    def __init__(
        self,
        db: Session,
        session: XeroSession,
        oauth: Optional[XeroOAuthClient] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.db = db
        self.session = session
        self.oauth = oauth or XeroOAuthClient()
        self._clock = clock or _epoch_ms
        self.repo = XeroTokenRepository()

    def now_ms(self) -> int:
        return self._clock()

    def peek(self) -> Optional[TokenSet]:
        """Decode the stored row into a TokenSet. Unreadable rows are logged and treated as absent."""
        try:
            row = self.repo.get_token(self.db)
            if row is None:
                return None
            return TokenSet(
                access_token=decrypt_token(row.access_token),
                refresh_token=decrypt_token(row.refresh_token),
                expires_in=row.expires_in,
                expires_at=row.expires_at,
                token_type=row.token_type or "Bearer",
                scope=row.scope or "",
                id_token=row.id_token,
                session_state=row.session_state,
                tenant_id=row.tenant_id,
            )
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"❌ Error reading Xero token: {str(e)}")
            return None

    async def read(self) -> Optional[TokenSet]:
        """
        Return the live TokenSet, refreshing it first when it expires within
        five minutes. Returns None when nothing is stored or the refresh fails.
        """
        token_set = self.peek()
        if token_set is None:
            return None

        if not token_set.expires_within(self.now_ms(), REFRESH_MARGIN_MS):
            return token_set

        logger.info("🔄 Xero token expires soon, refreshing")
        return await self._refresh(token_set)

    async def force_refresh(self) -> Optional[TokenSet]:
        """Refresh regardless of expiry"""
        token_set = self.peek()
        if token_set is None:
            return None
        return await self._refresh(token_set, force=True)

    async def _refresh(self, stale: TokenSet, force: bool = False) -> Optional[TokenSet]:
        async with self.session.refresh_lock:
            # Another request may have refreshed while we waited for the lock
            current = self.peek()
            if current is None:
                return None
            if current.access_token != stale.access_token and (
                force or not current.expires_within(self.now_ms(), REFRESH_MARGIN_MS)
            ):
                return current

            if not current.refresh_token:
                logger.error("❌ No refresh token stored, cannot refresh Xero token")
                return None

            try:
                token_data = await self.oauth.refresh(current.refresh_token)
                self.write(TokenSet.model_validate(token_data))
            except (XeroError, ValueError) as e:
                logger.error(f"❌ Xero token refresh failed: {str(e)}")
                return None

            logger.info("✅ Xero token refreshed")
            return self.peek()

    def write(self, token_set: Union[TokenSet, dict]) -> bool:
        """
        Replace the stored tokens with token_set.

        Raises ValueError (pydantic ValidationError) when access_token is
        missing, or when no refresh token is given and none is stored.
        """
        if not isinstance(token_set, TokenSet):
            token_set = TokenSet.model_validate(token_set)

        token_set = token_set.with_expiry(self.now_ms())

        refresh_token = token_set.refresh_token
        if not refresh_token:
            existing = self.peek()
            refresh_token = existing.refresh_token if existing else None
            if not refresh_token:
                raise ValueError("Invalid token set: missing refresh_token")

        self.repo.upsert_token(
            self.db,
            tenant_id=token_set.tenant_id,
            access_token=encrypt_token(token_set.access_token),
            refresh_token=encrypt_token(refresh_token),
            expires_in=token_set.expires_in,
            expires_at=token_set.expires_at,
            token_type=token_set.token_type,
            scope=token_set.scope,
            id_token=token_set.id_token,
            session_state=token_set.session_state,
        )

        if token_set.tenant_id:
            self.session.cache_tenant(token_set.tenant_id)

        logger.info(f"💾 Xero token saved, expires at {token_set.expiry_iso()}")
        return True

    def get_tenant_id(self) -> Optional[str]:
        if self.session.tenant_loaded:
            return self.session.tenant_id

        try:
            row = self.repo.get_token(self.db)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error reading Xero tenant: {str(e)}")
            return None

        tenant_id = row.tenant_id if row else None
        # Only cache a real tenant so a later connection is picked up
        if tenant_id:
            self.session.cache_tenant(tenant_id)
        return tenant_id

    def set_tenant_id(self, tenant_id: str) -> bool:
        saved = self.repo.set_tenant_id(self.db, tenant_id)
        if not saved:
            logger.warning("⚠️ No Xero token row to attach tenant to")
        self.session.cache_tenant(tenant_id)
        return saved

    def clear(self) -> int:
        """Delete every stored token and forget the tenant"""
        deleted = self.repo.delete_all(self.db)
        self.session.reset()
        logger.info(f"🗑️ Deleted {deleted} Xero token row(s)")
        return deleted

    def import_legacy_files(self, token_path: Union[str, Path], tenant_path: Union[str, Path]) -> bool:
        """
        Seed the database from the JSON token files written by the previous
        deployment. Does nothing once a token row exists. The files are left as they are.
        """
        if self.repo.count(self.db) > 0:
            return False

        token_file = Path(token_path)
        if not token_file.exists():
            return False

        try:
            token_set = TokenSet.model_validate(json.loads(token_file.read_text()))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"❌ Could not read legacy Xero token file {token_file}: {str(e)}")
            return False

        tenant_id = token_set.tenant_id
        tenant_file = Path(tenant_path)
        if not tenant_id and tenant_file.exists():
            try:
                tenant_id = json.loads(tenant_file.read_text()).get("tenantId")
            except (OSError, ValueError, AttributeError) as e:
                logger.warning(f"⚠️ Could not read legacy Xero tenant file {tenant_file}: {str(e)}")

        try:
            self.write(token_set.model_copy(update={"tenant_id": tenant_id}))
        except ValueError as e:
            logger.error(f"❌ Legacy Xero token rejected: {str(e)}")
            return False

        logger.info(f"📥 Imported legacy Xero token from {token_file}")
        return True
