"""Invoice router - FastAPI endpoints for the local invoice register"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from .schemas import InvoiceCreate, InvoiceDelete, InvoiceResponse, InvoiceUpdate
from .service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db)


@router.get("", response_model=list[InvoiceResponse])
async def get_invoices(
    status: Optional[str] = Query(None),
    include_deleted: bool = Query(False, alias="includeDeleted"),
    current_user: dict = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    """List invoices (soft-deleted ones only when includeDeleted=true)"""
    invoices = service.get_invoices(status=status, include_deleted=include_deleted)
    return [InvoiceResponse.from_invoice(i) for i in invoices]


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    current_user: dict = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return InvoiceResponse.from_invoice(service.get_invoice(invoice_id))


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    current_user: dict = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return InvoiceResponse.from_invoice(service.create_invoice(data))


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    current_user: dict = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return InvoiceResponse.from_invoice(service.update_invoice(invoice_id, data))


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    data: Optional[InvoiceDelete] = Body(None),
    current_user: dict = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Soft delete an invoice"""
    return service.delete_invoice(invoice_id, reason=data.reason if data else None)


@router.post("/{invoice_id}/restore", response_model=InvoiceResponse)
async def restore_invoice(
    invoice_id: int,
    current_user: dict = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return InvoiceResponse.from_invoice(service.restore_invoice(invoice_id))
