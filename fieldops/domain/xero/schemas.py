"""Xero domain schemas - Pydantic models for tokens, requests and responses"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class TokenSet(BaseModel):
    """OAuth2 credential bundle returned by the Xero identity server"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    access_token: str = Field(validation_alias=AliasChoices("access_token", "accessToken"))
    refresh_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("refresh_token", "refreshToken")
    )
    expires_in: int = Field(default=1800, validation_alias=AliasChoices("expires_in", "expiresIn"))
    expires_at: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("expires_at", "expiresAt")
    )  # epoch milliseconds
    token_type: Literal["Bearer"] = Field(
        default="Bearer", validation_alias=AliasChoices("token_type", "tokenType")
    )
    scope: str = ""
    id_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("id_token", "idToken"))
    session_state: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("session_state", "sessionState")
    )
    tenant_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("tenant_id", "tenantId"))

    @field_validator("access_token")
    @classmethod
    def validate_access_token(cls, v):
        if not v:
            raise ValueError("access_token must be a non-empty string")
        return v

    @field_validator("token_type", mode="before")
    @classmethod
    def normalize_token_type(cls, v):
        if v is None or (isinstance(v, str) and v.lower() == "bearer"):
            return "Bearer"
        return v

    @field_validator("expires_at", mode="before")
    @classmethod
    def coerce_expires_at(cls, v):
        # Legacy files stored ISO strings or datetimes
        if isinstance(v, datetime):
            if v.tzinfo is None:
                v = v.replace(tzinfo=timezone.utc)
            return int(v.timestamp() * 1000)
        if isinstance(v, str) and not v.isdigit():
            parsed = datetime.fromisoformat(v.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return int(parsed.timestamp() * 1000)
        return v

    def with_expiry(self, now_ms: int) -> "TokenSet":
        """Fill expires_at from expires_in when the server did not send it"""
        if self.expires_at is not None:
            return self
        return self.model_copy(update={"expires_at": now_ms + self.expires_in * 1000})

    def expires_within(self, now_ms: int, margin_ms: int) -> bool:
        return self.expires_at is None or self.expires_at < now_ms + margin_ms

    def expiry_iso(self) -> Optional[str]:
        if self.expires_at is None:
            return None
        return datetime.fromtimestamp(self.expires_at / 1000, tz=timezone.utc).isoformat()


class XeroStatusDetails(BaseModel):
    hasToken: bool
    hasAccessToken: bool
    hasTenantId: bool
    tokenExpiry: Optional[str] = None


class XeroStatusResponse(BaseModel):
    connected: bool
    tenantId: Optional[str] = None
    details: XeroStatusDetails


class AuthUrlResponse(BaseModel):
    authUrl: str
    state: str
    message: str = "Successfully generated Xero authorization URL"


class SyncFailure(BaseModel):
    xero_invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    error: str


class SyncResult(BaseModel):
    """Aggregate outcome of one sync run"""

    created: int = 0
    updated: int = 0
    errors: int = 0
    skipped: int = 0
    refreshed: int = 0
    total: int = 0
    failures: list[SyncFailure] = []


class SyncInvoicesResponse(BaseModel):
    success: bool
    message: str
    result: SyncResult


class XeroContact(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str
    type: Optional[str] = None


class CreateXeroInvoiceRequest(BaseModel):
    """Draft invoice to raise in Xero"""

    client: str  # Xero ContactID
    amount: float
    date: str
    dueDate: str
    description: Optional[str] = None
    invoiceID: Optional[str] = None  # sent as Reference

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError("amount must not be negative")
        return v


class CleanupResponse(BaseModel):
    success: bool
    message: str
    details: dict[str, Any]


class SyncLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sync_type: str
    status: str
    created: int
    updated: int
    errors: int
    skipped: int
    xero_invoice_id: Optional[str] = None
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: Optional[datetime] = None
