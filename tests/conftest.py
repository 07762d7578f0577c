import json
import os

# Settings must be in place before fieldops.config is imported
os.environ.setdefault("XERO_CLIENT_ID", "test-client-id")
os.environ.setdefault("XERO_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("XERO_REDIRECT_URI", "http://testserver/xero/callback")
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["XERO_PAGE_DELAY_SECONDS"] = "0"
os.environ["XERO_TOKEN_FILE"] = "/nonexistent/xero-token.json"
os.environ["XERO_TENANT_FILE"] = "/nonexistent/xero-tenant.json"

import httpx
import pytest
from jose import jwt

from fieldops import models, models_invoice, models_xero  # noqa: F401
from fieldops.config import JWT_ALGORITHM, JWT_SECRET
from fieldops.database import Base, SessionLocal, engine
from fieldops.domain.xero.oauth import XeroOAuthClient
from fieldops.domain.xero.session import XeroSession
from fieldops.domain.xero.token_store import TokenStore

T0_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-millisecond clock the tests move by hand"""

    def __init__(self, now_ms: int = T0_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float):
        self.now_ms += int(seconds * 1000)


class FakeXero:
    """In-memory stand-in for the Xero identity server and accounting API"""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_responses: list[tuple[int, dict]] = []
        self.issued = 0
        self.connections = [{"tenantId": "tenant-1", "tenantName": "Acme Removals"}]
        self.revoke_status = 200
        self.revoke_error = False
        self.connections_error = False
        self.api_status = None
        self.api_body = {"Message": "Something went wrong"}
        self.invoices: list[dict] = []
        self.invoice_by_id: dict[str, dict] = {}
        self.status_by_id: dict[str, int] = {}
        self.contacts: list[dict] = []

    def _token_response(self) -> httpx.Response:
        if self.token_responses:
            status, body = self.token_responses.pop(0)
            return httpx.Response(status, json=body)
        self.issued += 1
        return httpx.Response(
            200,
            json={
                "access_token": f"access-{self.issued}",
                "refresh_token": f"refresh-{self.issued}",
                "expires_in": 1800,
                "token_type": "Bearer",
                "scope": "offline_access accounting.transactions",
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/connect/token":
            return self._token_response()
        if path == "/connect/revocation":
            if self.revoke_error:
                raise httpx.ConnectError("revocation endpoint unreachable", request=request)
            return httpx.Response(self.revoke_status)
        if path == "/connections":
            if self.connections_error:
                raise httpx.ConnectError("identity server unreachable", request=request)
            return httpx.Response(200, json=self.connections)

        if self.api_status:
            return httpx.Response(self.api_status, json=self.api_body)

        if path == "/api.xro/2.0/Invoices" and request.method == "GET":
            page = int(request.url.params.get("page", "1"))
            size = int(request.url.params.get("pageSize", "100"))
            return httpx.Response(200, json={"Invoices": self.invoices[(page - 1) * size : page * size]})
        if path == "/api.xro/2.0/Invoices" and request.method == "POST":
            invoice = json.loads(request.content)["Invoices"][0]
            return httpx.Response(200, json={"Invoices": [{**invoice, "InvoiceID": "created-1"}]})
        if path.startswith("/api.xro/2.0/Invoices/"):
            xero_invoice_id = path.rsplit("/", 1)[1]
            if xero_invoice_id in self.status_by_id:
                return httpx.Response(self.status_by_id[xero_invoice_id], json=self.api_body)
            invoice = self.invoice_by_id.get(xero_invoice_id)
            if invoice is None:
                return httpx.Response(404, json={"Message": "Not found"})
            return httpx.Response(200, json={"Invoices": [invoice]})
        if path == "/api.xro/2.0/Contacts":
            return httpx.Response(200, json={"Contacts": self.contacts})

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def make_remote_invoice(
    invoice_id: str,
    number: str,
    status: str = "AUTHORISED",
    total=100.0,
    doc_type: str = "ACCREC",
    reference: str = None,
    description: str = "Asbestos clearance inspection",
    contact_name: str = "Harbour Builders",
) -> dict:
    return {
        "InvoiceID": invoice_id,
        "InvoiceNumber": number,
        "Type": doc_type,
        "Status": status,
        "Total": total,
        "Reference": reference,
        "Date": "/Date(1709251200000+0000)/",
        "DueDate": "/Date(1711929600000+0000)/",
        "LineItems": [{"Description": description}],
        "Contact": {"ContactID": f"contact-{invoice_id}", "Name": contact_name},
    }


@pytest.fixture
def remote_invoice():
    return make_remote_invoice


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_xero():
    return FakeXero()


@pytest.fixture
def xero_session():
    return XeroSession(state_ttl_seconds=600)


@pytest.fixture
def oauth(fake_xero):
    return XeroOAuthClient(transport=fake_xero.transport)


@pytest.fixture
def store(db, xero_session, oauth, clock):
    return TokenStore(db, xero_session, oauth, clock=clock)


@pytest.fixture
def auth_headers():
    token = jwt.encode({"id": 1, "email": "office@example.com"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
