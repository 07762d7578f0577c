#!/usr/bin/env python3
"""
Check the stored Xero connection and try one API call
Usage: python check_xero_connection.py
"""

import asyncio

from fieldops.database import SessionLocal
from fieldops.domain.xero.errors import XeroError
from fieldops.domain.xero.service import XeroAuthService
from fieldops.domain.xero.session import XeroSession
from fieldops.domain.xero.sync import InvoiceSyncService
from fieldops.domain.xero.token_store import TokenStore


async def check_xero_connection():
    db = SessionLocal()

    try:
        print("🔍 Checking Xero connection...\n")
        store = TokenStore(db, XeroSession())

        print("1️⃣ Stored credentials")
        status = await XeroAuthService(store).status()
        print(f"   - Token: {'✅' if status.details.hasToken else '❌'}")
        print(f"   - Tenant: {status.tenantId or '❌ none'}")
        print(f"   - Expires: {status.details.tokenExpiry or 'n/a'}")

        if not status.connected:
            print("\n   💡 Connect to Xero from the invoices page")
            return

        print("\n2️⃣ Contacts API")
        try:
            contacts = await InvoiceSyncService(db, store).get_contacts()
            print(f"   ✅ {len(contacts)} contacts visible")
        except XeroError as e:
            print(f"   ❌ {e.code}: {e.message}")
    finally:
        db.close()


if __name__ == "__main__":
    asyncio.run(check_xero_connection())
