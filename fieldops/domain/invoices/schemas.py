"""Invoice domain schemas - Pydantic models for validation"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator

from ...utils.sanitization import sanitize_string, validate_and_sanitize_input

INVOICE_STATUSES = ("draft", "pending", "paid", "overdue", "cancelled", "awaiting_approval")


def _validate_status(v):
    if v is not None and v not in INVOICE_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")
    return v


def _naive_utc(v):
    # Stored dates are naive UTC
    if isinstance(v, datetime) and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class InvoiceCreate(BaseModel):
    """Schema for creating a local invoice"""

    invoiceID: str
    amount: float
    status: str = "draft"
    date: datetime
    dueDate: datetime
    description: Optional[str] = None
    projectId: Optional[int] = None
    clientId: Optional[int] = None

    @field_validator("invoiceID")
    @classmethod
    def validate_invoice_id(cls, v):
        v = validate_and_sanitize_input(v, max_length=100)
        if not v:
            raise ValueError("invoiceID is required")
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError("Amount must not be negative")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _validate_status(v)

    @field_validator("date", "dueDate")
    @classmethod
    def normalize_dates(cls, v):
        return _naive_utc(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v):
        if v:
            return validate_and_sanitize_input(v, max_length=5000)
        return v


class InvoiceUpdate(BaseModel):
    """Schema for updating a local invoice"""

    invoiceID: Optional[str] = None
    amount: Optional[float] = None
    status: Optional[str] = None
    date: Optional[datetime] = None
    dueDate: Optional[datetime] = None
    description: Optional[str] = None
    projectId: Optional[int] = None
    clientId: Optional[int] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v is not None and v < 0:
            raise ValueError("Amount must not be negative")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _validate_status(v)

    @field_validator("date", "dueDate")
    @classmethod
    def normalize_dates(cls, v):
        return _naive_utc(v)

    @field_validator("invoiceID", "description")
    @classmethod
    def sanitize_text(cls, v):
        if v:
            return validate_and_sanitize_input(v, max_length=5000)
        return v


class InvoiceDelete(BaseModel):
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v):
        return sanitize_string(v)


class InvoiceResponse(BaseModel):
    """Schema for invoice response"""

    id: int
    invoiceID: str
    amount: float
    status: Optional[str]
    date: datetime
    dueDate: datetime
    description: Optional[str] = None
    projectId: Optional[int] = None
    projectName: Optional[str] = None
    clientId: Optional[int] = None
    clientName: Optional[str] = None
    xeroInvoiceId: Optional[str] = None
    xeroContactId: Optional[str] = None
    xeroStatus: Optional[str] = None
    xeroReference: Optional[str] = None
    lastSynced: Optional[datetime] = None
    isDeleted: bool = False
    deleteReason: Optional[str] = None
    deletedAt: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_invoice(cls, invoice) -> "InvoiceResponse":
        return cls(
            id=invoice.id,
            invoiceID=invoice.invoice_id,
            amount=invoice.amount,
            status=invoice.status,
            date=invoice.date,
            dueDate=invoice.due_date,
            description=invoice.description,
            projectId=invoice.project_id,
            projectName=invoice.project_name,
            clientId=invoice.client_id,
            clientName=invoice.client_name,
            xeroInvoiceId=invoice.xero_invoice_id,
            xeroContactId=invoice.xero_contact_id,
            xeroStatus=invoice.xero_status,
            xeroReference=invoice.xero_reference,
            lastSynced=invoice.last_synced,
            isDeleted=bool(invoice.is_deleted),
            deleteReason=invoice.delete_reason,
            deletedAt=invoice.deleted_at,
            created_at=invoice.created_at,
        )
