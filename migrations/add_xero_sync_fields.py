"""
Add Xero sync fields to an existing invoices table

Migration to add:
- xero_reference
- is_deleted / delete_reason / deleted_at (soft delete)
- last_synced

Run with: python migrations/add_xero_sync_fields.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect, text

from fieldops.database import engine

NEW_COLUMNS = {
    "xero_reference": "VARCHAR(255)",
    "is_deleted": "BOOLEAN NOT NULL DEFAULT FALSE",
    "delete_reason": "VARCHAR(500)",
    "deleted_at": "TIMESTAMP",
    "last_synced": "TIMESTAMP",
}


def upgrade():
    """Add Xero sync fields"""
    existing_columns = {c["name"] for c in inspect(engine).get_columns("invoices")}

    with engine.connect() as conn:
        for name, ddl in NEW_COLUMNS.items():
            if name in existing_columns:
                print(f"ℹ️  {name} column already exists")
                continue
            conn.execute(text(f"ALTER TABLE invoices ADD COLUMN {name} {ddl}"))
            print(f"✅ Added {name} column")

        conn.commit()
        print("\n✅ Migration completed successfully!")


def downgrade():
    """Remove Xero sync fields"""
    existing_columns = {c["name"] for c in inspect(engine).get_columns("invoices")}

    with engine.connect() as conn:
        for name in NEW_COLUMNS:
            if name in existing_columns:
                conn.execute(text(f"ALTER TABLE invoices DROP COLUMN {name}"))
                print(f"✅ Dropped {name} column")

        conn.commit()
        print("\n✅ Downgrade completed successfully!")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "downgrade":
        downgrade()
    else:
        upgrade()
