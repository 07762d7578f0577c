"""Translate Xero API documents into local invoice fields"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

RECEIVABLE_TYPE = "ACCREC"
EXCLUDED_REFERENCE_KEYWORDS = ("expense", "claim", "bill")
INVALID_INVOICE_NUMBERS = ("", "Expense Claims")

_XERO_DATE_RE = re.compile(r"/Date\((-?\d+)([+-]\d{4})?\)/")


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_xero_date(value: Any, fallback: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse the date shapes Xero returns:
    - "/Date(1700000000000+0000)/" (epoch milliseconds)
    - ISO strings ("2024-03-01", "2024-03-01T00:00:00")
    - dd/mm/yyyy, then mm/dd/yyyy
    Anything else returns fallback.
    """
    if value is None or value == "":
        return fallback

    if isinstance(value, datetime):
        return _naive_utc(value)

    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)

    if not isinstance(value, str):
        return fallback

    match = _XERO_DATE_RE.search(value)
    if match:
        return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc).replace(tzinfo=None)

    try:
        return _naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in ("%d/%m/%Y", "%m/%d/%Y"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    logger.warning(f"⚠️ Unrecognised Xero date {value!r}, using fallback")
    return fallback


def should_sync(remote: dict, statuses: Optional[list[str]] = None) -> tuple[bool, Optional[str]]:
    """Decide whether a remote document belongs in the local invoice register"""
    if remote.get("Type") != RECEIVABLE_TYPE:
        return False, f"document type {remote.get('Type')}"

    number = remote.get("InvoiceNumber") or ""
    if number in INVALID_INVOICE_NUMBERS:
        return False, f"invalid invoice number {number!r}"

    if statuses and remote.get("Status") not in statuses:
        return False, f"status {remote.get('Status')}"

    reference = (remote.get("Reference") or "").lower()
    for keyword in EXCLUDED_REFERENCE_KEYWORDS:
        if keyword in reference:
            return False, f"reference contains {keyword!r}"

    return True, None


def invoice_fields_from_xero(remote: dict, now: Optional[datetime] = None) -> dict:
    """Column values for a local Invoice built from a Xero invoice"""
    now = now or datetime.utcnow()
    contact = remote.get("Contact") or {}
    line_items = remote.get("LineItems") or []
    remote_status = remote.get("Status") or ""

    # None when Xero leaves a date out; see fill_missing_dates
    date = parse_xero_date(remote.get("DateString") or remote.get("Date"))
    due_date = parse_xero_date(remote.get("DueDateString") or remote.get("DueDate"))

    return {
        "invoice_id": remote.get("InvoiceNumber") or f"XERO-{remote.get('InvoiceID')}",
        "amount": float(remote.get("Total") or 0),
        "status": remote_status.lower(),
        "date": date,
        "due_date": due_date,
        "description": (line_items[0].get("Description") if line_items else None) or "",
        "xero_contact_id": contact.get("ContactID"),
        "xero_client_name": contact.get("Name"),
        "xero_reference": remote.get("Reference"),
        "xero_status": remote_status or None,
        "last_synced": now,
    }


def fill_missing_dates(fields: dict, now: datetime) -> dict:
    """Defaults for a new invoice: dated now, due thirty days after its date"""
    if fields.get("date") is None:
        fields["date"] = now
    if fields.get("due_date") is None:
        fields["due_date"] = fields["date"] + timedelta(days=30)
    return fields


def normalize_contact(contact: dict) -> dict:
    phones = contact.get("Phones") or []
    default_phone = next((p for p in phones if p.get("PhoneType") == "DEFAULT"), None)
    contact_status = contact.get("ContactStatus")

    return {
        "id": contact.get("ContactID"),
        "name": contact.get("Name"),
        "email": contact.get("EmailAddress"),
        "phone": default_phone.get("PhoneNumber") if default_phone else None,
        "status": "active" if contact_status == "ACTIVE" else "archived",
        "type": contact_status,
    }
