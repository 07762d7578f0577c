"""
Invoice model for the local invoice register
Invoices synced from Xero carry the xero_* linkage columns
"""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Invoice(Base):
    """Billable unit of work. Never hard-deleted, only flagged with is_deleted."""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)

    # Human-facing invoice code (Xero InvoiceNumber for synced invoices)
    invoice_id = Column(String(100), unique=True, nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)

    amount = Column(Float, nullable=False, default=0)
    status = Column(String(50), default="draft")  # draft, pending, paid, overdue, cancelled, awaiting_approval
    date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    description = Column(Text, nullable=True)

    # Xero integration
    xero_invoice_id = Column(String(255), unique=True, nullable=True, index=True)
    xero_contact_id = Column(String(255), nullable=True)
    xero_client_name = Column(String(255), nullable=True)
    xero_reference = Column(String(255), nullable=True)  # project mapping hint
    xero_status = Column(String(50), nullable=True)  # DRAFT, SUBMITTED, AUTHORISED, PAID, VOIDED, DELETED
    last_synced = Column(DateTime, nullable=True)

    # Soft delete
    is_deleted = Column(Boolean, default=False, nullable=False)
    delete_reason = Column(String(500), nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="invoices")
    project = relationship("Project", back_populates="invoices")

    @property
    def client_name(self):
        """Local client name, falling back to the name Xero reported"""
        if self.client is not None:
            return self.client.name
        return self.xero_client_name

    @property
    def project_name(self):
        return self.project.name if self.project is not None else None
