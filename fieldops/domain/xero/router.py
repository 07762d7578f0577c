"""Xero router - FastAPI endpoints for the Xero connection and invoice sync"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import FRONTEND_URL
from ...database import get_db
from ..invoices.schemas import InvoiceResponse
from .errors import TokenRefreshFailed, XeroError
from .oauth import XeroOAuthClient
from .repository import XeroSyncLogRepository
from .schemas import (
    AuthUrlResponse,
    CleanupResponse,
    CreateXeroInvoiceRequest,
    SyncInvoicesResponse,
    SyncLogResponse,
    XeroContact,
    XeroStatusResponse,
)
from .service import XeroAuthService
from .session import XeroSession
from .sync import InvoiceSyncService
from .token_store import TokenStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/xero", tags=["Xero"])


# ============================================================================
# DEPENDENCIES
# ============================================================================


def get_xero_session(request: Request) -> XeroSession:
    """The process-wide session built at startup"""
    return request.app.state.xero_session


def get_xero_transport() -> Optional[httpx.AsyncBaseTransport]:
    """HTTP transport for Xero calls; None means the real network"""
    return None


def get_oauth_client(
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_xero_transport),
) -> XeroOAuthClient:
    return XeroOAuthClient(transport=transport)


def get_token_store(
    db: Session = Depends(get_db),
    session: XeroSession = Depends(get_xero_session),
    oauth: XeroOAuthClient = Depends(get_oauth_client),
) -> TokenStore:
    return TokenStore(db, session, oauth)


def get_auth_service(store: TokenStore = Depends(get_token_store)) -> XeroAuthService:
    return XeroAuthService(store)


def get_sync_service(
    db: Session = Depends(get_db),
    store: TokenStore = Depends(get_token_store),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_xero_transport),
) -> InvoiceSyncService:
    return InvoiceSyncService(db, store, transport=transport)


def _frontend_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(url=f"{FRONTEND_URL}/invoices?{query}", status_code=302)


# ============================================================================
# CONNECTION
# ============================================================================


@router.get("/status", response_model=XeroStatusResponse)
async def get_status(
    current_user: dict = Depends(get_current_user),
    service: XeroAuthService = Depends(get_auth_service),
):
    """Whether a usable token and tenant are stored"""
    return await service.status()


@router.get("/auth-url", response_model=AuthUrlResponse)
async def get_auth_url(
    current_user: dict = Depends(get_current_user),
    service: XeroAuthService = Depends(get_auth_service),
):
    """Generate the Xero consent URL for the frontend to open"""
    return service.get_auth_url()


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    service: XeroAuthService = Depends(get_auth_service),
):
    """
    Xero redirects the browser here after consent.
    Always answers with a redirect back to the invoices page.
    """
    if error:
        logger.warning(f"⚠️ Xero authorization denied: {error}")
        return _frontend_redirect(f"xero_error={quote(error)}")

    try:
        await service.handle_callback(code, state)
    except XeroError as e:
        logger.error(f"❌ Xero callback failed ({e.code}): {e.message}")
        return _frontend_redirect(f"xero_error={quote(e.message)}")
    except Exception as e:
        logger.error(f"❌ Unexpected error in Xero callback: {str(e)}")
        return _frontend_redirect(f"xero_error={quote('Failed to complete Xero authentication')}")

    return _frontend_redirect("xero_connected=true")


@router.post("/disconnect")
async def disconnect(
    current_user: dict = Depends(get_current_user),
    service: XeroAuthService = Depends(get_auth_service),
):
    await service.disconnect()
    return {"success": True, "connected": False, "message": "Successfully disconnected from Xero"}


@router.post("/refresh-token")
async def refresh_token(
    current_user: dict = Depends(get_current_user),
    store: TokenStore = Depends(get_token_store),
):
    """Force a token refresh regardless of expiry"""
    token_set = await store.force_refresh()
    if token_set is None:
        raise TokenRefreshFailed()
    return {
        "success": True,
        "message": "Xero token refreshed",
        "tokenExpiry": token_set.expiry_iso(),
    }


# ============================================================================
# CONTACTS & INVOICES
# ============================================================================


@router.get("/contacts", response_model=list[XeroContact])
async def get_contacts(
    current_user: dict = Depends(get_current_user),
    service: InvoiceSyncService = Depends(get_sync_service),
):
    return await service.get_contacts()


@router.get("/invoices")
async def get_remote_invoices(
    current_user: dict = Depends(get_current_user),
    service: InvoiceSyncService = Depends(get_sync_service),
):
    """Receivable invoices as Xero reports them"""
    return await service.list_remote_invoices()


@router.post("/sync-invoices", response_model=SyncInvoicesResponse)
async def sync_invoices(
    current_user: dict = Depends(get_current_user),
    service: InvoiceSyncService = Depends(get_sync_service),
):
    result = await service.sync_from_remote()
    synced = result.created + result.updated
    return SyncInvoicesResponse(
        success=True,
        message=f"Successfully synced {synced} invoices",
        result=result,
    )


@router.post("/invoices/{invoice_id}/sync", response_model=InvoiceResponse)
async def sync_invoice(
    invoice_id: int,
    current_user: dict = Depends(get_current_user),
    service: InvoiceSyncService = Depends(get_sync_service),
):
    """Refresh one local invoice from Xero"""
    invoice = await service.sync_invoice_status(invoice_id)
    return InvoiceResponse.from_invoice(invoice)


@router.post("/create-invoice")
async def create_invoice(
    data: CreateXeroInvoiceRequest,
    current_user: dict = Depends(get_current_user),
    service: InvoiceSyncService = Depends(get_sync_service),
):
    return await service.create_remote_invoice(data)


@router.post("/cleanup-paid-invoices", response_model=CleanupResponse)
async def cleanup_paid_invoices(
    current_user: dict = Depends(get_current_user),
    service: InvoiceSyncService = Depends(get_sync_service),
):
    details = service.cleanup_paid_invoices()
    return CleanupResponse(
        success=True,
        message=f"Successfully soft deleted {details['softDeleted']} paid invoices",
        details=details,
    )


@router.get("/sync-logs", response_model=list[SyncLogResponse])
async def get_sync_logs(
    limit: int = Query(20, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return XeroSyncLogRepository.get_recent(db, limit=limit)
