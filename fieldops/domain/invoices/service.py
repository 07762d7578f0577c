"""Invoice service - Business logic for the local invoice register"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Client, Project
from ...models_invoice import Invoice
from .repository import InvoiceRepository
from .schemas import InvoiceCreate, InvoiceUpdate

logger = logging.getLogger(__name__)

_UPDATE_FIELDS = {
    "invoiceID": "invoice_id",
    "amount": "amount",
    "status": "status",
    "date": "date",
    "dueDate": "due_date",
    "description": "description",
    "projectId": "project_id",
    "clientId": "client_id",
}


class InvoiceService:
    """Service layer for invoice business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InvoiceRepository()

    def get_invoices(self, status: Optional[str] = None, include_deleted: bool = False) -> list[Invoice]:
        return self.repo.get_invoices(self.db, status=status, include_deleted=include_deleted)

    def get_invoice(self, invoice_pk: int, include_deleted: bool = False) -> Invoice:
        invoice = self.repo.get_invoice_by_id(self.db, invoice_pk, include_deleted=include_deleted)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def _check_references(self, project_id: Optional[int], client_id: Optional[int]):
        if project_id is not None and self.db.get(Project, project_id) is None:
            raise HTTPException(status_code=400, detail="Project not found")
        if client_id is not None and self.db.get(Client, client_id) is None:
            raise HTTPException(status_code=400, detail="Client not found")

    def create_invoice(self, data: InvoiceCreate) -> Invoice:
        logger.info(f"📥 Creating invoice {data.invoiceID}")

        if self.repo.get_by_invoice_number(self.db, data.invoiceID):
            raise HTTPException(status_code=400, detail="Invoice ID already exists")
        if data.dueDate < data.date:
            raise HTTPException(status_code=400, detail="Due date cannot be before invoice date")
        self._check_references(data.projectId, data.clientId)

        try:
            return self.repo.create_invoice(
                self.db,
                invoice_id=data.invoiceID,
                amount=data.amount,
                status=data.status,
                date=data.date,
                due_date=data.dueDate,
                description=data.description,
                project_id=data.projectId,
                client_id=data.clientId,
            )
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=400, detail="Invoice ID already exists") from e

    def update_invoice(self, invoice_pk: int, data: InvoiceUpdate) -> Invoice:
        invoice = self.get_invoice(invoice_pk)

        updates = {}
        for field_name in data.model_fields_set:
            value = getattr(data, field_name)
            if value is None and field_name not in ("description", "projectId", "clientId"):
                continue
            updates[_UPDATE_FIELDS[field_name]] = value

        new_number = updates.get("invoice_id")
        if new_number and new_number != invoice.invoice_id:
            if self.repo.get_by_invoice_number(self.db, new_number):
                raise HTTPException(status_code=400, detail="Invoice ID already exists")

        if (updates.get("due_date") or invoice.due_date) < (updates.get("date") or invoice.date):
            raise HTTPException(status_code=400, detail="Due date cannot be before invoice date")
        self._check_references(updates.get("project_id"), updates.get("client_id"))

        return self.repo.update_invoice(self.db, invoice, **updates)

    def delete_invoice(self, invoice_pk: int, reason: Optional[str] = None) -> dict:
        """Soft delete. Invoices are never removed from the table."""
        invoice = self.get_invoice(invoice_pk)
        self.repo.soft_delete(self.db, invoice, reason or "Deleted by user")
        logger.info(f"🗑️ Soft deleted invoice {invoice.invoice_id}")
        return {"message": "Invoice deleted"}

    def restore_invoice(self, invoice_pk: int) -> Invoice:
        invoice = self.get_invoice(invoice_pk, include_deleted=True)
        if not invoice.is_deleted:
            raise HTTPException(status_code=400, detail="Invoice is not deleted")
        self.repo.restore(self.db, invoice)
        self.db.refresh(invoice)
        logger.info(f"♻️ Restored invoice {invoice.invoice_id}")
        return invoice
