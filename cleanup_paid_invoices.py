#!/usr/bin/env python3
"""
Soft delete every live invoice marked as paid
Usage: python cleanup_paid_invoices.py
"""

from fieldops.database import SessionLocal
from fieldops.domain.xero.session import XeroSession
from fieldops.domain.xero.sync import InvoiceSyncService
from fieldops.domain.xero.token_store import TokenStore


def cleanup_paid_invoices():
    db = SessionLocal()

    try:
        print("🧹 Cleaning up paid invoices...\n")
        service = InvoiceSyncService(db, TokenStore(db, XeroSession()))
        result = service.cleanup_paid_invoices()

        print(f"   📊 Found: {result['totalFound']}")
        print(f"   ✅ Soft deleted: {result['softDeleted']}")
        if result["errors"]:
            print(f"   ❌ Errors: {result['errors']}")
    finally:
        db.close()


if __name__ == "__main__":
    cleanup_paid_invoices()
