"""Xero error family - each error carries the string code the frontend keys on"""

from typing import Any, Optional

RECONNECT_MESSAGE = "Xero connection expired. Please reconnect to Xero."


class XeroError(Exception):
    code = "XERO_ERROR"
    status_code = 500
    default_message = "Xero request failed"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class XeroAuthRequired(XeroError):
    """No usable token or tenant. The user must run the consent flow again."""

    code = "XERO_AUTH_REQUIRED"
    status_code = 401
    default_message = "Please connect to Xero first"

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({"needsAuth": True, "connected": False})
        return body


class NotConnected(XeroAuthRequired):
    """Raised by the sync engine; reported to HTTP callers as XERO_AUTH_REQUIRED"""

    internal_code = "NOT_CONNECTED"


class XeroReconnectRequired(XeroAuthRequired):
    """Xero answered 401 to an API call"""

    default_message = RECONNECT_MESSAGE


class InvalidState(XeroError):
    code = "INVALID_STATE"
    status_code = 400
    default_message = "Invalid state parameter"


class MissingCode(XeroError):
    code = "MISSING_CODE"
    status_code = 400
    default_message = "Missing authorization code"


class TokenExchangeFailed(XeroError):
    code = "TOKEN_EXCHANGE_FAILED"
    status_code = 502
    default_message = "Failed to exchange authorization code with Xero"


class TokenRefreshFailed(XeroError):
    code = "TOKEN_REFRESH_FAILED"
    status_code = 401
    default_message = "Failed to refresh Xero token"


class NoOrganizations(XeroError):
    code = "NO_ORGANIZATIONS"
    status_code = 400
    default_message = (
        "No Xero organizations found. Please ensure you have access to at least one organization."
    )


class XeroApiError(XeroError):
    """Any other non-2xx answer from Xero; details hold the remote body"""

    code = "XERO_API_ERROR"
    status_code = 500

    def __init__(self, message: Optional[str] = None, details: Any = None, remote_status: Optional[int] = None):
        super().__init__(message, details)
        self.remote_status = remote_status
