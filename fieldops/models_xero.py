"""
Xero Integration Models
Database models for storing Xero OAuth tokens and sync history
"""

from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base

# The token table only ever holds this one row
SINGLETON_KEY = "xero"


class XeroToken(Base):
    """Store the live Xero OAuth token set and the selected tenant"""

    __tablename__ = "xerotokens"

    id = Column(Integer, primary_key=True, index=True)
    singleton_key = Column(String(20), unique=True, nullable=False, default=SINGLETON_KEY)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)  # epoch milliseconds
    token_type = Column(String(20), nullable=False, default="Bearer")
    scope = Column(Text, nullable=False, default="")
    id_token = Column(Text, nullable=True)
    session_state = Column(String(255), nullable=True)

    # Selected Xero organisation
    tenant_id = Column(String(255), nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class XeroSyncLog(Base):
    """Track Xero sync operations"""

    __tablename__ = "xero_sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    sync_type = Column(String(50), nullable=False)  # invoices, invoice_status, create_invoice, cleanup
    status = Column(String(50), nullable=False)  # success, partial, failed

    created = Column(Integer, default=0)
    updated = Column(Integer, default=0)
    errors = Column(Integer, default=0)
    skipped = Column(Integer, default=0)

    xero_invoice_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
