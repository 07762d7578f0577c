"""
Xero invoice sync
Pulls receivable invoices for the connected tenant into the local invoice
register, and pushes draft invoices back.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional

import httpx
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import XERO_PAGE_DELAY_SECONDS, XERO_SYNC_CONCURRENCY, XERO_SYNC_STATUSES
from ...models_invoice import Invoice
from ..invoices.repository import InvoiceRepository
from .client import XeroApiClient
from .errors import NotConnected, XeroError, XeroReconnectRequired
from .mapping import fill_missing_dates, invoice_fields_from_xero, normalize_contact, should_sync
from .repository import XeroSyncLogRepository
from .schemas import CreateXeroInvoiceRequest, SyncFailure, SyncResult
from .token_store import TokenStore

logger = logging.getLogger(__name__)

PAID_CLEANUP_REASON = "Manual cleanup: Invoice marked as paid in Xero"


class InvoiceSyncService:
    """Keeps the local invoice register in step with Xero"""

    def __init__(
        self,
        db: Session,
        store: TokenStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        statuses: Optional[list[str]] = None,
        concurrency: int = XERO_SYNC_CONCURRENCY,
        page_delay: float = XERO_PAGE_DELAY_SECONDS,
    ):
        self.db = db
        self.store = store
        self.transport = transport
        self.statuses = statuses if statuses is not None else XERO_SYNC_STATUSES
        self.concurrency = max(1, concurrency)
        self.page_delay = page_delay
        self.invoices = InvoiceRepository()
        self.logs = XeroSyncLogRepository()

    async def api_client(self) -> XeroApiClient:
        """Client for the connected tenant. Raises NotConnected without a usable token and tenant."""
        token_set = await self.store.read()
        if token_set is None:
            raise NotConnected("No valid Xero token. Please connect to Xero first")

        tenant_id = self.store.get_tenant_id()
        if not tenant_id:
            raise NotConnected("No Xero organisation selected. Please connect to Xero first")

        return XeroApiClient(
            token_set.access_token, tenant_id, transport=self.transport, page_delay=self.page_delay
        )

    def _record(self, sync_type: str, started: float, **data):
        duration_ms = int((time.monotonic() - started) * 1000)
        try:
            self.logs.add_log(self.db, sync_type=sync_type, duration_ms=duration_ms, **data)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to write Xero sync log: {str(e)}")

    def _apply_remote(self, remote: dict) -> bool:
        """
        Upsert one remote invoice by its Xero InvoiceID and commit.
        Returns True when a new local invoice was created.
        """
        xero_invoice_id = remote.get("InvoiceID")
        if not xero_invoice_id:
            raise ValueError("Xero invoice has no InvoiceID")

        now = datetime.utcnow()
        fields = invoice_fields_from_xero(remote, now=now)
        invoice = self.invoices.get_by_xero_id(self.db, xero_invoice_id)

        if invoice is None:
            self.db.add(Invoice(xero_invoice_id=xero_invoice_id, **fill_missing_dates(fields, now)))
            self.db.commit()
            return True

        # Keep what we have when Xero leaves these out
        if not fields["description"]:
            fields.pop("description")
        for key in ("date", "due_date"):
            if fields[key] is None:
                fields.pop(key)
        if invoice.invoice_id != fields["invoice_id"]:
            logger.info(f"🔁 Xero invoice number changed: {invoice.invoice_id} -> {fields['invoice_id']}")
        for key, value in fields.items():
            setattr(invoice, key, value)
        self.db.commit()
        return False

    async def sync_from_remote(self) -> SyncResult:
        """
        Fetch receivable invoices and upsert each one independently.
        A failing invoice is rolled back and counted; the rest of the batch continues.
        """
        started = time.monotonic()
        api = await self.api_client()

        try:
            remote_invoices = await api.get_invoices(statuses=self.statuses)
        except XeroError as e:
            self._record("invoices", started, status="failed", error_message=e.message)
            raise

        result = SyncResult(total=len(remote_invoices))
        seen: set[str] = set()
        logger.info(f"📥 Retrieved {len(remote_invoices)} invoices from Xero")

        for remote in remote_invoices:
            include, reason = should_sync(remote, self.statuses)
            if not include:
                logger.debug(f"Skipping Xero document {remote.get('InvoiceNumber')}: {reason}")
                result.skipped += 1
                continue

            if remote.get("InvoiceID"):
                seen.add(remote["InvoiceID"])
            try:
                if self._apply_remote(remote):
                    result.created += 1
                else:
                    result.updated += 1
            except Exception as e:
                self.db.rollback()
                result.errors += 1
                result.failures.append(
                    SyncFailure(
                        xero_invoice_id=remote.get("InvoiceID"),
                        invoice_number=remote.get("InvoiceNumber"),
                        error=str(e),
                    )
                )
                logger.error(f"❌ Error processing Xero invoice {remote.get('InvoiceID')}: {str(e)}")

        try:
            await self._reconcile(api, seen, result)
        except XeroError as e:
            self._record("invoices", started, status="failed", error_message=e.message, **_counts(result))
            raise

        status = "success" if result.errors == 0 else "partial"
        self._record(
            "invoices",
            started,
            status=status,
            details={"failures": [f.model_dump() for f in result.failures], "refreshed": result.refreshed},
            **_counts(result),
        )
        logger.info(
            f"✅ Xero sync finished: {result.created} created, {result.updated} updated, "
            f"{result.errors} errors, {result.skipped} skipped, {result.refreshed} refreshed"
        )
        return result

    async def _reconcile(self, api: XeroApiClient, seen: set[str], result: SyncResult):
        """Refresh local invoices still marked open that this run no longer returned"""
        open_statuses = [s.lower() for s in self.statuses]
        stale_ids = [
            inv.xero_invoice_id for inv in self.invoices.get_open_synced(self.db, open_statuses, seen)
        ]
        if not stale_ids:
            return

        logger.info(f"🔄 Refreshing {len(stale_ids)} invoices no longer open in Xero")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch(xero_invoice_id: str):
            async with semaphore:
                return await api.get_invoice(xero_invoice_id)

        outcomes = await asyncio.gather(*(fetch(xid) for xid in stale_ids), return_exceptions=True)

        # Every fetch has finished; a lost connection or an unexpected error aborts the run
        fatal = [
            o for o in outcomes
            if isinstance(o, XeroReconnectRequired) or (isinstance(o, BaseException) and not isinstance(o, XeroError))
        ]
        if fatal:
            raise fatal[0]

        for xero_invoice_id, remote in zip(stale_ids, outcomes):
            if isinstance(remote, XeroError):
                result.errors += 1
                result.failures.append(SyncFailure(xero_invoice_id=xero_invoice_id, error=str(remote)))
                logger.error(f"❌ Error fetching invoice {xero_invoice_id}: {str(remote)}")
                continue
            if remote is None:
                logger.warning(f"⚠️ Invoice {xero_invoice_id} not found in Xero")
                continue
            try:
                self._apply_remote(remote)
                result.refreshed += 1
            except Exception as e:
                self.db.rollback()
                result.errors += 1
                result.failures.append(SyncFailure(xero_invoice_id=xero_invoice_id, error=str(e)))
                logger.error(f"❌ Error refreshing invoice {xero_invoice_id}: {str(e)}")

    async def sync_invoice_status(self, invoice_pk: int) -> Invoice:
        """Refresh one local invoice from its Xero counterpart"""
        started = time.monotonic()
        invoice = self.invoices.get_invoice_by_id(self.db, invoice_pk, include_deleted=True)
        if invoice is None:
            raise HTTPException(status_code=404, detail="Invoice not found")
        if not invoice.xero_invoice_id:
            raise HTTPException(status_code=400, detail="Invoice is not linked to Xero")

        xero_invoice_id = invoice.xero_invoice_id
        api = await self.api_client()
        try:
            remote = await api.get_invoice(xero_invoice_id)
        except XeroError as e:
            self._record(
                "invoice_status", started, status="failed", xero_invoice_id=xero_invoice_id, error_message=e.message
            )
            raise

        if remote is None:
            raise HTTPException(status_code=404, detail="Invoice not found in Xero")

        try:
            self._apply_remote(remote)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error updating invoice {invoice_pk} from Xero: {str(e)}")
            self._record(
                "invoice_status", started, status="failed", errors=1, xero_invoice_id=xero_invoice_id, error_message=str(e)
            )
            raise HTTPException(status_code=500, detail=f"Failed to update invoice from Xero: {str(e)}") from e

        self._record("invoice_status", started, status="success", updated=1, xero_invoice_id=xero_invoice_id)
        self.db.refresh(invoice)
        return invoice

    def cleanup_paid_invoices(self) -> dict:
        """Soft delete every live invoice whose status is paid"""
        started = time.monotonic()
        paid = self.invoices.get_invoices(self.db, status="paid")
        logger.info(f"🧹 Found {len(paid)} paid invoices to clean up")

        soft_deleted = 0
        errors = 0
        for invoice in paid:
            try:
                self.invoices.soft_delete(self.db, invoice, PAID_CLEANUP_REASON)
                soft_deleted += 1
            except Exception as e:
                self.db.rollback()
                errors += 1
                logger.error(f"❌ Error soft deleting invoice {invoice.id}: {str(e)}")

        self._record(
            "cleanup",
            started,
            status="success" if errors == 0 else "partial",
            updated=soft_deleted,
            errors=errors,
        )
        return {"totalFound": len(paid), "softDeleted": soft_deleted, "errors": errors}

    def restore_soft_deleted(self) -> dict:
        """Un-delete soft-deleted invoices that are linked to Xero"""
        deleted = self.invoices.get_deleted_xero_invoices(self.db)
        restored = []
        for invoice in deleted:
            self.invoices.restore(self.db, invoice, commit=False)
            restored.append(invoice.invoice_id)
        self.db.commit()
        logger.info(f"♻️ Restored {len(restored)} soft-deleted Xero invoices")
        return {"totalFound": len(deleted), "restored": len(restored), "invoiceIds": restored}

    async def get_contacts(self) -> list[dict]:
        api = await self.api_client()
        contacts = await api.get_contacts()
        return [normalize_contact(c) for c in contacts]

    async def list_remote_invoices(self) -> list[dict]:
        api = await self.api_client()
        return await api.get_invoices()

    async def create_remote_invoice(self, data: CreateXeroInvoiceRequest) -> dict:
        """Raise a DRAFT receivable invoice in Xero"""
        started = time.monotonic()
        api = await self.api_client()

        payload = {
            "Type": "ACCREC",
            "Contact": {"ContactID": data.client},
            "LineItems": [
                {
                    "Description": data.description or "Invoice line item",
                    "Quantity": 1,
                    "UnitAmount": data.amount,
                    "AccountCode": "200",
                }
            ],
            "Date": data.date,
            "DueDate": data.dueDate,
            "Status": "DRAFT",
        }
        if data.invoiceID:
            payload["Reference"] = data.invoiceID

        try:
            created = await api.create_invoice(payload)
        except XeroError as e:
            self._record("create_invoice", started, status="failed", error_message=e.message)
            raise

        self._record("create_invoice", started, status="success", created=1, xero_invoice_id=created.get("InvoiceID"))
        logger.info(f"✅ Created Xero invoice {created.get('InvoiceID')}")
        return created


def _counts(result: SyncResult) -> dict:
    return {
        "created": result.created,
        "updated": result.updated,
        "errors": result.errors,
        "skipped": result.skipped,
    }
