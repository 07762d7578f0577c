#!/usr/bin/env python3
"""
Restore soft-deleted invoices that came from Xero
Usage: python restore_soft_deleted_invoices.py
"""

from fieldops.database import SessionLocal
from fieldops.domain.xero.session import XeroSession
from fieldops.domain.xero.sync import InvoiceSyncService
from fieldops.domain.xero.token_store import TokenStore


def restore_soft_deleted_invoices():
    db = SessionLocal()

    try:
        print("♻️ Restoring soft-deleted Xero invoices...\n")
        service = InvoiceSyncService(db, TokenStore(db, XeroSession()))
        result = service.restore_soft_deleted()

        print(f"   📊 Found: {result['totalFound']}")
        print(f"   ✅ Restored: {result['restored']}")
        for invoice_id in result["invoiceIds"]:
            print(f"   - {invoice_id}")
    finally:
        db.close()


if __name__ == "__main__":
    restore_soft_deleted_invoices()
