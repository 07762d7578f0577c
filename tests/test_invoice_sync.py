import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from fieldops.domain.xero.errors import RECONNECT_MESSAGE, NotConnected, XeroApiError, XeroReconnectRequired
from fieldops.domain.xero.schemas import CreateXeroInvoiceRequest
from fieldops.domain.xero.sync import PAID_CLEANUP_REASON, InvoiceSyncService
from fieldops.models_invoice import Invoice
from fieldops.models_xero import XeroSyncLog


@pytest.fixture
def connected(store):
    store.write({"access_token": "live-access", "refresh_token": "live-refresh", "expires_in": 1800})
    store.set_tenant_id("tenant-1")
    return store


@pytest.fixture
def sync_service(db, connected, fake_xero):
    return InvoiceSyncService(db, connected, transport=fake_xero.transport, page_delay=0)


def _local_invoice(db, **overrides) -> Invoice:
    data = {
        "invoice_id": "LOCAL-1",
        "amount": 10.0,
        "status": "authorised",
        "date": datetime(2024, 1, 1),
        "due_date": datetime(2024, 1, 31),
    }
    data.update(overrides)
    invoice = Invoice(**data)
    db.add(invoice)
    db.commit()
    return invoice


def test_sync_requires_token(db, store, fake_xero):
    service = InvoiceSyncService(db, store, transport=fake_xero.transport)

    with pytest.raises(NotConnected) as exc_info:
        asyncio.run(service.sync_from_remote())

    assert exc_info.value.code == "XERO_AUTH_REQUIRED"
    assert exc_info.value.internal_code == "NOT_CONNECTED"
    assert fake_xero.requests == []


def test_sync_requires_tenant(db, store, fake_xero):
    store.write({"access_token": "a", "refresh_token": "b"})
    service = InvoiceSyncService(db, store, transport=fake_xero.transport)

    with pytest.raises(NotConnected):
        asyncio.run(service.sync_from_remote())


def test_unseen_invoice_is_created(sync_service, db, fake_xero, remote_invoice):
    fake_xero.invoices = [remote_invoice("INV-1", "INV-0001", status="AUTHORISED", total=250.5)]

    result = asyncio.run(sync_service.sync_from_remote())

    assert (result.created, result.updated, result.errors) == (1, 0, 0)
    invoice = db.query(Invoice).one()
    assert invoice.xero_invoice_id == "INV-1"
    assert invoice.invoice_id == "INV-0001"
    assert invoice.status == "authorised"
    assert invoice.xero_status == "AUTHORISED"
    assert invoice.amount == 250.5
    assert invoice.date == datetime(2024, 3, 1)
    assert invoice.due_date == datetime(2024, 4, 1)
    assert invoice.description == "Asbestos clearance inspection"
    assert invoice.client_name == "Harbour Builders"
    assert invoice.last_synced is not None


def test_request_carries_tenant_and_filters(sync_service, fake_xero):
    asyncio.run(sync_service.sync_from_remote())

    request = fake_xero.calls("/api.xro/2.0/Invoices")[0]
    assert request.headers["Authorization"] == "Bearer live-access"
    assert request.headers["Xero-tenant-id"] == "tenant-1"
    assert request.url.params["where"] == 'Type=="ACCREC"'
    assert request.url.params["Statuses"] == "SUBMITTED,AUTHORISED"


def test_existing_invoice_is_updated_not_duplicated(sync_service, db, fake_xero, remote_invoice):
    _local_invoice(db, invoice_id="INV-0001", xero_invoice_id="INV-1", amount=10.0, status="submitted")
    fake_xero.invoices = [remote_invoice("INV-1", "INV-0001", status="AUTHORISED", total=99.0)]

    result = asyncio.run(sync_service.sync_from_remote())

    assert (result.created, result.updated) == (0, 1)
    invoice = db.query(Invoice).one()
    assert invoice.amount == 99.0
    assert invoice.status == "authorised"


def test_second_sync_does_not_duplicate(sync_service, db, fake_xero, remote_invoice):
    fake_xero.invoices = [remote_invoice("INV-1", "INV-0001"), remote_invoice("INV-2", "INV-0002")]

    asyncio.run(sync_service.sync_from_remote())
    result = asyncio.run(sync_service.sync_from_remote())

    assert (result.created, result.updated) == (0, 2)
    assert db.query(Invoice).count() == 2


def test_changed_invoice_number_is_updated_in_place(sync_service, db, fake_xero, remote_invoice):
    _local_invoice(db, invoice_id="INV-0001", xero_invoice_id="INV-1")
    fake_xero.invoices = [remote_invoice("INV-1", "INV-0100")]

    asyncio.run(sync_service.sync_from_remote())

    invoice = db.query(Invoice).one()
    assert invoice.invoice_id == "INV-0100"


def test_soft_deleted_invoice_is_matched_and_stays_deleted(sync_service, db, fake_xero, remote_invoice):
    _local_invoice(db, invoice_id="INV-0001", xero_invoice_id="INV-1", is_deleted=True)
    fake_xero.invoices = [remote_invoice("INV-1", "INV-0001", total=42.0)]

    result = asyncio.run(sync_service.sync_from_remote())

    assert result.updated == 1
    invoice = db.query(Invoice).one()
    assert invoice.amount == 42.0
    assert invoice.is_deleted is True


def test_one_failing_invoice_does_not_stop_the_batch(sync_service, db, fake_xero, remote_invoice):
    fake_xero.invoices = [
        remote_invoice("INV-1", "INV-0001"),
        remote_invoice("INV-2", "INV-0002", total="not-a-number"),
        remote_invoice("INV-3", "INV-0003"),
    ]

    result = asyncio.run(sync_service.sync_from_remote())

    assert (result.created, result.errors) == (2, 1)
    assert result.failures[0].xero_invoice_id == "INV-2"
    assert {i.xero_invoice_id for i in db.query(Invoice).all()} == {"INV-1", "INV-3"}


def test_database_error_on_one_invoice_is_rolled_back(sync_service, db, fake_xero, remote_invoice):
    _local_invoice(db, invoice_id="INV-0002", xero_invoice_id=None)
    fake_xero.invoices = [
        remote_invoice("INV-1", "INV-0001"),
        remote_invoice("INV-2", "INV-0002"),  # number already used locally
        remote_invoice("INV-3", "INV-0003"),
    ]

    result = asyncio.run(sync_service.sync_from_remote())

    assert (result.created, result.errors) == (2, 1)
    assert db.query(Invoice).count() == 3


def test_documents_outside_the_register_are_skipped(sync_service, db, fake_xero, remote_invoice):
    fake_xero.invoices = [
        remote_invoice("BILL-1", "BILL-0001", doc_type="ACCPAY"),
        remote_invoice("EXP-1", "Expense Claims"),
        remote_invoice("EMPTY-1", ""),
        remote_invoice("REF-1", "INV-0004", reference="Staff expense reimbursement"),
        remote_invoice("DRAFT-1", "INV-0005", status="DRAFT"),
        remote_invoice("INV-1", "INV-0001"),
    ]

    result = asyncio.run(sync_service.sync_from_remote())

    assert (result.created, result.skipped, result.total) == (1, 5, 6)
    assert [i.xero_invoice_id for i in db.query(Invoice).all()] == ["INV-1"]


def test_all_pages_are_fetched(sync_service, db, fake_xero, remote_invoice):
    fake_xero.invoices = [remote_invoice(f"INV-{n}", f"INV-{n:04d}") for n in range(150)]

    result = asyncio.run(sync_service.sync_from_remote())

    pages = [r.url.params["page"] for r in fake_xero.calls("/api.xro/2.0/Invoices")]
    assert pages == ["1", "2"]
    assert result.created == 150


def test_open_invoices_missing_from_run_are_refreshed(sync_service, db, fake_xero, remote_invoice):
    _local_invoice(db, invoice_id="INV-0009", xero_invoice_id="OLD-1", status="authorised")
    _local_invoice(db, invoice_id="INV-0010", xero_invoice_id="OLD-2", status="submitted")
    _local_invoice(db, invoice_id="LOCAL-DRAFT", xero_invoice_id=None, status="draft")
    fake_xero.invoice_by_id["OLD-1"] = remote_invoice("OLD-1", "INV-0009", status="PAID")
    fake_xero.invoice_by_id["OLD-2"] = remote_invoice("OLD-2", "INV-0010", status="VOIDED")
    fake_xero.invoices = [remote_invoice("INV-1", "INV-0001")]

    result = asyncio.run(sync_service.sync_from_remote())

    assert result.refreshed == 2
    statuses = {i.xero_invoice_id: i.status for i in db.query(Invoice).all()}
    assert statuses["OLD-1"] == "paid"
    assert statuses["OLD-2"] == "voided"
    assert statuses[None] == "draft"
    assert len(fake_xero.calls("/api.xro/2.0/Invoices/OLD-1")) == 1


def test_refresh_of_invoice_unknown_to_xero_is_ignored(sync_service, db, fake_xero):
    _local_invoice(db, invoice_id="INV-0009", xero_invoice_id="GONE-1", status="authorised")

    result = asyncio.run(sync_service.sync_from_remote())

    assert (result.refreshed, result.errors) == (0, 0)
    assert db.query(Invoice).one().status == "authorised"


def test_remote_401_asks_for_reconnect(sync_service, fake_xero):
    fake_xero.api_status = 401

    with pytest.raises(XeroReconnectRequired) as exc_info:
        asyncio.run(sync_service.sync_from_remote())

    assert exc_info.value.message == RECONNECT_MESSAGE
    assert exc_info.value.to_dict()["error"] == "XERO_AUTH_REQUIRED"


def test_other_remote_errors_carry_the_body(sync_service, fake_xero, db):
    fake_xero.api_status = 500
    fake_xero.api_body = {"Message": "Internal failure", "ErrorNumber": 500}

    with pytest.raises(XeroApiError) as exc_info:
        asyncio.run(sync_service.sync_from_remote())

    assert exc_info.value.details == {"Message": "Internal failure", "ErrorNumber": 500}
    log = db.query(XeroSyncLog).one()
    assert log.status == "failed"


def test_sync_run_is_logged(sync_service, db, fake_xero, remote_invoice):
    fake_xero.invoices = [
        remote_invoice("INV-1", "INV-0001"),
        remote_invoice("INV-2", "INV-0002", total="bad"),
    ]

    asyncio.run(sync_service.sync_from_remote())

    log = db.query(XeroSyncLog).one()
    assert log.sync_type == "invoices"
    assert log.status == "partial"
    assert (log.created, log.errors) == (1, 1)
    assert log.details["failures"][0]["xero_invoice_id"] == "INV-2"


def test_sync_invoice_status(sync_service, db, fake_xero, remote_invoice):
    invoice = _local_invoice(db, invoice_id="INV-0001", xero_invoice_id="INV-1", status="authorised")
    fake_xero.invoice_by_id["INV-1"] = remote_invoice("INV-1", "INV-0001", status="PAID", total=500)

    refreshed = asyncio.run(sync_service.sync_invoice_status(invoice.id))

    assert refreshed.status == "paid"
    assert refreshed.xero_status == "PAID"
    assert refreshed.amount == 500
    assert db.query(XeroSyncLog).one().sync_type == "invoice_status"


def test_sync_invoice_status_needs_xero_link(sync_service, db):
    invoice = _local_invoice(db, xero_invoice_id=None)

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(sync_service.sync_invoice_status(invoice.id))
    assert exc_info.value.status_code == 400

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(sync_service.sync_invoice_status(9999))
    assert exc_info.value.status_code == 404


def test_cleanup_paid_invoices(sync_service, db):
    _local_invoice(db, invoice_id="PAID-1", status="paid")
    _local_invoice(db, invoice_id="PAID-2", status="paid")
    _local_invoice(db, invoice_id="OPEN-1", status="authorised")

    result = sync_service.cleanup_paid_invoices()

    assert (result["totalFound"], result["softDeleted"]) == (2, 2)
    deleted = db.query(Invoice).filter(Invoice.is_deleted.is_(True)).all()
    assert {i.invoice_id for i in deleted} == {"PAID-1", "PAID-2"}
    assert all(i.delete_reason == PAID_CLEANUP_REASON for i in deleted)
    assert db.query(Invoice).count() == 3


def test_restore_soft_deleted(sync_service, db):
    _local_invoice(db, invoice_id="XERO-1", xero_invoice_id="X-1", is_deleted=True, delete_reason="paid")
    _local_invoice(db, invoice_id="LOCAL-2", xero_invoice_id=None, is_deleted=True)

    result = sync_service.restore_soft_deleted()

    assert result["restored"] == 1
    restored = db.query(Invoice).filter(Invoice.invoice_id == "XERO-1").one()
    assert restored.is_deleted is False
    assert restored.delete_reason is None
    assert db.query(Invoice).filter(Invoice.invoice_id == "LOCAL-2").one().is_deleted is True


def test_create_remote_invoice(sync_service, fake_xero, db):
    data = CreateXeroInvoiceRequest(
        client="contact-42",
        amount=1200,
        date="2024-05-01",
        dueDate="2024-05-31",
        description="Air monitoring",
        invoiceID="JOB-77",
    )

    created = asyncio.run(sync_service.create_remote_invoice(data))

    assert created["InvoiceID"] == "created-1"
    assert created["Type"] == "ACCREC"
    assert created["Status"] == "DRAFT"
    assert created["Reference"] == "JOB-77"
    assert created["Contact"] == {"ContactID": "contact-42"}
    assert created["LineItems"] == [
        {"Description": "Air monitoring", "Quantity": 1, "UnitAmount": 1200.0, "AccountCode": "200"}
    ]
    assert db.query(XeroSyncLog).one().sync_type == "create_invoice"


def test_get_contacts(sync_service, fake_xero):
    fake_xero.contacts = [
        {
            "ContactID": "c-1",
            "Name": "Harbour Builders",
            "EmailAddress": "accounts@harbour.test",
            "ContactStatus": "ACTIVE",
            "Phones": [
                {"PhoneType": "MOBILE", "PhoneNumber": "0400 000 000"},
                {"PhoneType": "DEFAULT", "PhoneNumber": "02 9000 0000"},
            ],
        },
        {"ContactID": "c-2", "Name": "Old Client", "ContactStatus": "ARCHIVED"},
    ]

    contacts = asyncio.run(sync_service.get_contacts())

    assert contacts[0] == {
        "id": "c-1",
        "name": "Harbour Builders",
        "email": "accounts@harbour.test",
        "phone": "02 9000 0000",
        "status": "active",
        "type": "ACTIVE",
    }
    assert contacts[1]["status"] == "archived"
    assert contacts[1]["phone"] is None


def test_update_without_dates_keeps_stored_dates(sync_service, db, fake_xero, remote_invoice):
    fake_xero.invoices = [remote_invoice("X-1", "INV-0001")]
    asyncio.run(sync_service.sync_from_remote())

    sparse = remote_invoice("X-1", "INV-0001", total=300)
    del sparse["Date"], sparse["DueDate"]
    fake_xero.invoices = [sparse]
    asyncio.run(sync_service.sync_from_remote())

    invoice = db.query(Invoice).one()
    db.refresh(invoice)
    assert invoice.amount == 300
    assert invoice.date == datetime(2024, 3, 1)
    assert invoice.due_date == datetime(2024, 4, 1)


def test_new_invoice_without_dates_gets_defaults(sync_service, db, fake_xero, remote_invoice):
    sparse = remote_invoice("X-1", "INV-0001")
    del sparse["Date"], sparse["DueDate"]
    fake_xero.invoices = [sparse]

    asyncio.run(sync_service.sync_from_remote())

    invoice = db.query(Invoice).one()
    assert invoice.date is not None
    assert invoice.due_date - invoice.date == timedelta(days=30)


def test_reconnect_during_refresh_waits_for_every_fetch(sync_service, db, fake_xero, remote_invoice):
    _local_invoice(db, invoice_id="INV-0007", xero_invoice_id="OLD-1", status="authorised")
    _local_invoice(db, invoice_id="INV-0008", xero_invoice_id="OLD-2", status="authorised")
    _local_invoice(db, invoice_id="INV-0009", xero_invoice_id="OLD-3", status="authorised")
    fake_xero.status_by_id = {"OLD-1": 401, "OLD-2": 401}
    fake_xero.invoice_by_id["OLD-3"] = remote_invoice("OLD-3", "INV-0009", status="PAID")

    with pytest.raises(XeroReconnectRequired):
        asyncio.run(sync_service.sync_from_remote())

    fetched = [r.url.path.rsplit("/", 1)[1] for r in fake_xero.requests if "/Invoices/" in r.url.path]
    assert sorted(fetched) == ["OLD-1", "OLD-2", "OLD-3"]
    assert db.query(XeroSyncLog).one().status == "failed"


def test_failed_fetch_during_refresh_is_counted(sync_service, db, fake_xero, remote_invoice):
    _local_invoice(db, invoice_id="INV-0007", xero_invoice_id="OLD-1", status="authorised")
    _local_invoice(db, invoice_id="INV-0008", xero_invoice_id="OLD-2", status="authorised")
    fake_xero.status_by_id = {"OLD-1": 500}
    fake_xero.invoice_by_id["OLD-2"] = remote_invoice("OLD-2", "INV-0008", status="PAID")

    result = asyncio.run(sync_service.sync_from_remote())

    assert (result.refreshed, result.errors) == (1, 1)
    assert result.failures[0].xero_invoice_id == "OLD-1"


def test_sync_invoice_status_write_failure_is_rolled_back_and_logged(sync_service, db, fake_xero, remote_invoice):
    invoice = _local_invoice(db, invoice_id="LOCAL-A", xero_invoice_id="X-1", status="authorised")
    _local_invoice(db, invoice_id="INV-0001", xero_invoice_id=None, status="draft")
    fake_xero.invoice_by_id["X-1"] = remote_invoice("X-1", "INV-0001", status="PAID")

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(sync_service.sync_invoice_status(invoice.id))

    assert exc_info.value.status_code == 500
    db.refresh(invoice)
    assert (invoice.invoice_id, invoice.status) == ("LOCAL-A", "authorised")
    log = db.query(XeroSyncLog).one()
    assert (log.sync_type, log.status, log.xero_invoice_id) == ("invoice_status", "failed", "X-1")


def test_sync_invoice_status_names_unnumbered_invoice(sync_service, db, fake_xero, remote_invoice):
    invoice = _local_invoice(db, invoice_id="LOCAL-A", xero_invoice_id="X-9", status="authorised")
    fake_xero.invoice_by_id["X-9"] = remote_invoice("X-9", None, status="AUTHORISED")

    refreshed = asyncio.run(sync_service.sync_invoice_status(invoice.id))

    assert refreshed.invoice_id == "XERO-X-9"
