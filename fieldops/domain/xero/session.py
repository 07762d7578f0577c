"""
Process-scoped Xero connection state

One XeroSession is built at startup and handed to every request through
app.state, replacing the module-level "current state" / "current tenant"
variables the consent flow would otherwise need.
"""

import asyncio
import logging
import secrets
import time
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    AWAITING_CALLBACK = "AWAITING_CALLBACK"
    AUTHENTICATED = "AUTHENTICATED"


class XeroSession:
    def __init__(self, state_ttl_seconds: int = 600, clock: Optional[Callable[[], float]] = None):
        self.state_ttl_seconds = state_ttl_seconds
        self._clock = clock or time.time

        self.auth_state = AuthState.UNAUTHENTICATED
        self.tenant_id: Optional[str] = None
        self.tenant_loaded = False

        # state token -> issued at (seconds)
        self._pending_states: dict[str, float] = {}

        # Serialises token refreshes within this process
        self.refresh_lock = asyncio.Lock()

    def generate_state(self) -> str:
        """Issue a CSRF state token for one authorization round trip"""
        self._prune_states()
        state = secrets.token_urlsafe(32)
        self._pending_states[state] = self._clock()
        self.auth_state = AuthState.AWAITING_CALLBACK
        return state

    def verify_state(self, state: Optional[str]) -> bool:
        """Check and consume a state token"""
        if not state:
            return False
        issued_at = self._pending_states.pop(state, None)
        if issued_at is None:
            return False
        if self._clock() - issued_at > self.state_ttl_seconds:
            logger.warning("⚠️ Xero state token expired before callback")
            return False
        return True

    @property
    def pending_state_count(self) -> int:
        return len(self._pending_states)

    def _prune_states(self):
        now = self._clock()
        expired = [s for s, issued in self._pending_states.items() if now - issued > self.state_ttl_seconds]
        for state in expired:
            del self._pending_states[state]

    def cache_tenant(self, tenant_id: Optional[str]):
        self.tenant_id = tenant_id
        self.tenant_loaded = True

    def mark_authenticated(self):
        self.auth_state = AuthState.AUTHENTICATED

    def reset(self):
        """Back to UNAUTHENTICATED with no tenant and no pending authorizations"""
        self.auth_state = AuthState.UNAUTHENTICATED
        self.tenant_id = None
        self.tenant_loaded = False
        self._pending_states.clear()
