"""
Shared fixtures: sample documents and an in-memory stand-in for the
procurement API built on httpx.MockTransport (no network).
"""
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from procuredesk.schemas.po import PurchaseOrder, PurchaseOrderItem, POStatus
from procuredesk.schemas.grn import GRN, GRNItem, GRNStatus
from procuredesk.schemas.invoice import Invoice, InvoiceItem, InvoiceStatus
from procuredesk.services.api_client import ProcurementAPIClient, to_payload
from procuredesk.services.storage_service import StorageService


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeProcurementAPI:
    """
    Routes (method, path) to canned JSON answers and records every request.

    An answer may be a dict/list (200 JSON), bytes (binary download), an
    httpx.Response, or a callable taking the request and returning one of those.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method: str, path: str, answer):
        self.routes[(method.upper(), path)] = answer
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.replace("/api", "", 1)
        answer = self.routes.get((request.method, path))
        if answer is None:
            return httpx.Response(404, json={"message": f"No route for {request.method} {path}"})
        if callable(answer):
            answer = answer(request)
        if isinstance(answer, httpx.Response):
            return answer
        if isinstance(answer, bytes):
            return httpx.Response(200, content=answer, headers={"Content-Type": "application/pdf"})
        return httpx.Response(200, json=answer)

    def sent(self, method: str, path: str):
        """Requests made to one route, in order"""
        return [r for r in self.requests if r.method == method and r.url.path.replace("/api", "", 1) == path]

    def body(self, method: str, path: str, index: int = -1):
        return json.loads(self.sent(method, path)[index].content)


def echo_body(request: httpx.Request):
    """Answer a POST/PUT with the document it carried, as the API does after saving"""
    payload = json.loads(request.content)
    payload.setdefault("id", 1)
    return payload


@pytest.fixture
def fake_api():
    return FakeProcurementAPI()


@pytest.fixture
def http_client(fake_api):
    return httpx.AsyncClient(base_url="http://procurement.test/api", transport=httpx.MockTransport(fake_api.handler))


@pytest.fixture
def api(http_client):
    return ProcurementAPIClient(http_client)


@pytest.fixture
def storage(tmp_path):
    return StorageService(local_dir=str(tmp_path / "exports"))


@pytest.fixture
def failing_storage(storage, monkeypatch):
    """Storage whose every archive attempt fails, as with a full disk"""
    def archive(file_content, folder, filename):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(storage, "archive", archive)
    return storage


@pytest.fixture
def po_item():
    return PurchaseOrderItem(
        id=11,
        item_name="Dell Latitude 7440",
        item_code="LAP-7440",
        quantity=Decimal("2"),
        unit_price=Decimal("200000"),
        unit_of_measurement="NOS",
        tax1_type="CGST",
        tax1_rate=Decimal("9"),
        tax2_type="SGST",
        tax2_rate=Decimal("9"),
    )


@pytest.fixture
def purchase_order(po_item):
    return PurchaseOrder(
        id=1,
        po_number="PO/2024-2025/001",
        po_date=date(2024, 6, 1),
        delivery_date=date(2024, 6, 30),
        supplier_id=7,
        supplier_name="Acme Traders",
        raised_by="priya",
        payment_terms="Net 30",
        status=POStatus.SUBMITTED,
        items=[po_item],
    )


@pytest.fixture
def approved_po(purchase_order):
    return purchase_order.model_copy(update={"status": POStatus.APPROVED})


@pytest.fixture
def grn(approved_po):
    return GRN(
        id=5,
        grn_number="GRN/2024-2025/001",
        po_id=approved_po.id,
        po_number=approved_po.po_number,
        supplier_id=7,
        supplier_name="Acme Traders",
        status=GRNStatus.APPROVED,
        total_received_value=Decimal("400000.00"),
        items=[GRNItem(
            id=51,
            po_item_id=11,
            item_name="Dell Latitude 7440",
            item_code="LAP-7440",
            po_quantity=Decimal("2"),
            received_quantity=Decimal("2"),
            accepted_quantity=Decimal("2"),
            pending_quantity=Decimal("0"),
            unit_price=Decimal("200000"),
            total_value=Decimal("400000.00"),
        )],
    )


@pytest.fixture
def invoice():
    return Invoice(
        id=9,
        invoice_number="INV-1001",
        invoice_date=date(2024, 7, 1),
        po_id=1,
        po_number="PO/2024-2025/001",
        grn_id=5,
        grn_number="GRN/2024-2025/001",
        supplier_id=7,
        supplier_name="Acme Traders",
        status=InvoiceStatus.APPROVED,
        sub_total=Decimal("400000.00"),
        tax_amount=Decimal("72000.00"),
        grand_total=Decimal("472000.00"),
        balance_amount=Decimal("472000.00"),
        items=[InvoiceItem(
            id=91,
            po_item_id=11,
            grn_item_id=51,
            item_name="Dell Latitude 7440",
            invoice_quantity=Decimal("2"),
            unit_price=Decimal("200000"),
            cgst_rate=Decimal("9"),
            sgst_rate=Decimal("9"),
        )],
    )


def dump(model):
    """JSON the procurement API would send for a document"""
    return to_payload(model)
