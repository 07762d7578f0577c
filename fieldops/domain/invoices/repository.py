"""Invoice repository - Database operations for invoices"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_invoice import Invoice


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def get_invoices(db: Session, status: Optional[str] = None, include_deleted: bool = False) -> list[Invoice]:
        """Get invoices, newest first. Soft-deleted invoices are excluded unless asked for."""
        query = db.query(Invoice)
        if not include_deleted:
            query = query.filter(Invoice.is_deleted.is_(False))
        if status:
            query = query.filter(Invoice.status == status)
        return query.order_by(Invoice.date.desc(), Invoice.id.desc()).all()

    @staticmethod
    def get_invoice_by_id(db: Session, invoice_pk: int, include_deleted: bool = False) -> Optional[Invoice]:
        query = db.query(Invoice).filter(Invoice.id == invoice_pk)
        if not include_deleted:
            query = query.filter(Invoice.is_deleted.is_(False))
        return query.first()

    @staticmethod
    def get_by_xero_id(db: Session, xero_invoice_id: str) -> Optional[Invoice]:
        """Look up by Xero InvoiceID, including soft-deleted invoices"""
        return db.query(Invoice).filter(Invoice.xero_invoice_id == xero_invoice_id).first()

    @staticmethod
    def get_by_invoice_number(db: Session, invoice_id: str) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.invoice_id == invoice_id).first()

    @staticmethod
    def get_open_synced(db: Session, statuses: list[str], exclude_xero_ids: set[str]) -> list[Invoice]:
        """Live Xero-linked invoices still in one of statuses and not in exclude_xero_ids"""
        query = db.query(Invoice).filter(
            Invoice.is_deleted.is_(False),
            Invoice.xero_invoice_id.isnot(None),
            Invoice.status.in_(statuses),
        )
        if exclude_xero_ids:
            query = query.filter(Invoice.xero_invoice_id.notin_(list(exclude_xero_ids)))
        return query.all()

    @staticmethod
    def get_deleted_xero_invoices(db: Session) -> list[Invoice]:
        return (
            db.query(Invoice)
            .filter(Invoice.is_deleted.is_(True), Invoice.xero_invoice_id.isnot(None))
            .all()
        )

    @staticmethod
    def create_invoice(db: Session, **invoice_data) -> Invoice:
        invoice = Invoice(**invoice_data)
        db.add(invoice)
        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def update_invoice(db: Session, invoice: Invoice, **updates) -> Invoice:
        """Update an invoice with provided fields"""
        for key, value in updates.items():
            if hasattr(invoice, key):
                setattr(invoice, key, value)

        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def soft_delete(db: Session, invoice: Invoice, reason: Optional[str] = None, commit: bool = True) -> Invoice:
        invoice.is_deleted = True
        invoice.delete_reason = reason
        invoice.deleted_at = datetime.utcnow()
        if commit:
            db.commit()
        return invoice

    @staticmethod
    def restore(db: Session, invoice: Invoice, commit: bool = True) -> Invoice:
        invoice.is_deleted = False
        invoice.delete_reason = None
        invoice.deleted_at = None
        if commit:
            db.commit()
        return invoice
