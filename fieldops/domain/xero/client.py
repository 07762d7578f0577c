"""
Xero Accounting API client
Thin wrapper over the REST endpoints the invoice sync needs
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ...config import XERO_HTTP_TIMEOUT, XERO_PAGE_DELAY_SECONDS
from .errors import XeroApiError, XeroReconnectRequired

logger = logging.getLogger(__name__)

XERO_API_BASE_URL = "https://api.xero.com/api.xro/2.0"

PAGE_SIZE = 100
MAX_PAGES = 50


class XeroApiClient:
    """Calls the accounting API on behalf of one tenant"""

    def __init__(
        self,
        access_token: str,
        tenant_id: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = XERO_HTTP_TIMEOUT,
        page_delay: float = XERO_PAGE_DELAY_SECONDS,
    ):
        self.access_token = access_token
        self.tenant_id = tenant_id
        self.transport = transport
        self.timeout = timeout
        self.page_delay = page_delay

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Xero-tenant-id": self.tenant_id,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, params: Optional[dict] = None, json: Any = None) -> dict:
        url = f"{XERO_API_BASE_URL}{path}"
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.request(method, url, headers=self._headers(), params=params, json=json)
        except httpx.HTTPError as e:
            logger.error(f"❌ Xero request {method} {path} failed: {str(e)}")
            raise XeroApiError(f"Xero request failed: {str(e)}") from e

        if response.status_code == 401:
            logger.warning(f"⚠️ Xero rejected access token on {method} {path}")
            raise XeroReconnectRequired()

        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            logger.error(f"❌ Xero API error {response.status_code} on {method} {path}: {body}")
            raise XeroApiError(
                f"Xero API call failed: {response.status_code}",
                details=body,
                remote_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise XeroApiError("Invalid JSON response from Xero", details=response.text) from e

    async def get_invoices(
        self,
        statuses: Optional[list[str]] = None,
        invoice_type: str = "ACCREC",
        page_size: int = PAGE_SIZE,
        max_pages: int = MAX_PAGES,
    ) -> list[dict]:
        """Fetch every page of invoices matching type and statuses"""
        params = {"where": f'Type=="{invoice_type}"', "pageSize": page_size}
        if statuses:
            params["Statuses"] = ",".join(statuses)

        invoices = []
        for page in range(1, max_pages + 1):
            data = await self._request("GET", "/Invoices", params={**params, "page": page})
            batch = data.get("Invoices") or []
            invoices.extend(batch)
            logger.info(f"📄 Xero invoices page {page}: {len(batch)} records")

            if len(batch) < page_size:
                break
            if self.page_delay:
                await asyncio.sleep(self.page_delay)
        else:
            logger.warning(f"⚠️ Stopped paging Xero invoices after {max_pages} pages")

        return invoices

    async def get_invoice(self, xero_invoice_id: str) -> Optional[dict]:
        """Fetch one invoice, or None when Xero does not know it"""
        try:
            data = await self._request("GET", f"/Invoices/{xero_invoice_id}")
        except XeroApiError as e:
            if e.remote_status == 404:
                return None
            raise
        invoices = data.get("Invoices") or []
        return invoices[0] if invoices else None

    async def get_contacts(self) -> list[dict]:
        data = await self._request("GET", "/Contacts")
        return data.get("Contacts") or []

    async def create_invoice(self, invoice: dict) -> dict:
        data = await self._request("POST", "/Invoices", json={"Invoices": [invoice]})
        created = data.get("Invoices") or []
        if not created:
            raise XeroApiError("Xero did not return the created invoice", details=data)
        return created[0]
