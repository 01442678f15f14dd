from datetime import date
from decimal import Decimal

import httpx
import pytest

from procuredesk.exceptions import DocumentNotFound, DocumentValidationError, UpstreamAPIError
from procuredesk.schemas.po import POApproveRequest, POCreate, POStatus, PurchaseOrderItem
from procuredesk.services.purchase_order_service import PurchaseOrderService, validate_po_draft
from procuredesk.utils.receipt import outstanding_quantity

from conftest import dump, echo_body

pytestmark = pytest.mark.anyio


@pytest.fixture
def service(api, storage):
    return PurchaseOrderService(api, storage)


@pytest.fixture
def draft(po_item):
    return POCreate(
        po_date=date(2024, 6, 1),
        delivery_date=date(2024, 6, 30),
        supplier_id=7,
        supplier_name="Acme Traders",
        raised_by="priya",
        payment_terms="Net 30",
        items=[po_item],
    )


class TestDraftValidation:

    def test_valid_draft(self, draft):
        validate_po_draft(draft)

    def test_every_problem_is_listed(self, draft):
        bad = draft.model_copy(update={
            "supplier_id": None,
            "supplier_name": " ",
            "delivery_date": date(2024, 5, 1),
            "items": [PurchaseOrderItem(item_name="", quantity=Decimal("0"), unit_price=Decimal("-1"))],
        })
        with pytest.raises(DocumentValidationError) as excinfo:
            validate_po_draft(bad)
        fields = [error["field"] for error in excinfo.value.errors]
        assert fields == ["supplierId", "items[1].itemName", "items[1].quantity", "items[1].unitPrice", "deliveryDate"]

    def test_outstanding_quantity(self, po_item):
        assert outstanding_quantity(po_item) == Decimal("2")
        assert outstanding_quantity(po_item.model_copy(update={"received_quantity": Decimal("2")})) == Decimal("0")
        assert outstanding_quantity(po_item.model_copy(update={"pending_quantity": Decimal("1")})) == Decimal("1")
        assert outstanding_quantity(po_item.model_copy(update={"pending_quantity": Decimal("0")})) == Decimal("0")


class TestCreate:

    async def test_create_generates_number_and_totals(self, service, fake_api, draft):
        fake_api.on("GET", "/purchaseorder/generate-number", httpx.Response(200, text="PO/2024-2025/042"))
        fake_api.on("POST", "/purchaseorder", echo_body)

        result = await service.create(draft)

        assert result.ok
        assert result.status_code == 201
        body = fake_api.body("POST", "/purchaseorder")
        assert body["poNumber"] == "PO/2024-2025/042"
        assert body["status"] == "DRAFT"
        assert body["grandTotal"] == 472000.0
        assert result.data.grand_total == Decimal("472000")

    async def test_invalid_number_is_refused_before_sending(self, service, fake_api, draft):
        result = await service.create(draft.model_copy(update={"po_number": "PO-42"}))
        assert not result.ok
        assert result.error_kind == "validation"
        assert fake_api.requests == []

    async def test_upstream_error_becomes_failed_result(self, service, fake_api, draft):
        fake_api.on("POST", "/purchaseorder", httpx.Response(409, json={"message": "PO number already exists"}))
        result = await service.create(draft.model_copy(update={"po_number": "PO/2024-2025/001"}))

        assert not result.ok
        assert result.message == "PO number already exists"
        assert result.status_code == 409
        assert result.error_kind == "upstream"

    async def test_create_from_rfp(self, service, fake_api):
        fake_api.on("GET", "/rfp/3", {
            "id": 3,
            "rfpNumber": "RFP-3",
            "quotations": [{
                "quotationNumber": "Q-9",
                "supplierId": 7,
                "isSelected": True,
                "items": [{"itemName": "Desk", "quantity": 10, "unitPrice": 5000}],
            }],
        })
        fake_api.on("POST", "/purchaseorder/from-rfp/3", echo_body)

        result = await service.create_from_rfp(3, {"raisedBy": "priya", "poNumber": "PO/2024-2025/007"})

        assert result.ok, result.message
        body = fake_api.body("POST", "/purchaseorder/from-rfp/3")
        assert body["raisedBy"] == "priya"
        assert body["quotationNumber"] == "Q-9"
        assert body["grandTotal"] == 59000.0

    async def test_rfp_without_selected_quotation(self, service, fake_api):
        fake_api.on("GET", "/rfp/3", {"id": 3, "quotations": [{"quotationNumber": "Q-1", "items": []}]})
        result = await service.create_from_rfp(3)
        assert not result.ok
        assert result.message == "No selected quotation found for this RFP"


class TestStatusActions:

    async def test_approve_requires_submitted(self, service, fake_api, approved_po):
        """Approving an already approved PO is refused before any upstream call."""
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        result = await service.approve(1, POApproveRequest(approved_by="ravi", approval_date=date(2024, 6, 2)))

        assert not result.ok
        assert result.status_code == 409
        assert fake_api.sent("POST", "/purchaseorder/1/approve") == []

    async def test_approve_sends_approver_and_date(self, service, fake_api, purchase_order, approved_po):
        fake_api.on("GET", "/purchaseorder/1", dump(purchase_order))
        fake_api.on("POST", "/purchaseorder/1/approve", dump(approved_po))

        result = await service.approve(1, POApproveRequest(approved_by="ravi", approval_date=date(2024, 6, 2)))

        assert result.ok
        params = fake_api.sent("POST", "/purchaseorder/1/approve")[0].url.params
        assert params["approvedBy"] == "ravi"
        assert params["approvalDate"] == "2024-06-02"

    async def test_reject_without_reason(self, service, fake_api, purchase_order):
        fake_api.on("GET", "/purchaseorder/1", dump(purchase_order))
        result = await service.reject(1, "  ")
        assert not result.ok
        assert result.error_kind == "missing_input"

    async def test_cancel_sends_reason(self, service, fake_api, approved_po):
        cancelled = approved_po.model_copy(update={"status": POStatus.CANCELLED})
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("POST", "/purchaseorder/1/cancel", dump(cancelled))

        result = await service.cancel(1, " Supplier withdrew ")

        assert result.ok
        assert fake_api.sent("POST", "/purchaseorder/1/cancel")[0].url.params["reason"] == "Supplier withdrew"

    async def test_save_and_submit_partial_failure(self, service, fake_api, purchase_order, draft):
        """
        A save that succeeds followed by a submit that fails leaves the PO saved;
        the result reports the failure with the saved PO attached.
        """
        editable = purchase_order.model_copy(update={"status": POStatus.DRAFT})
        fake_api.on("GET", "/purchaseorder/1", dump(editable))
        fake_api.on("PUT", "/purchaseorder/1", echo_body)
        fake_api.on("POST", "/purchaseorder/1/submit", httpx.Response(500, json={"message": "Approval group not configured"}))

        result = await service.update(1, draft, submit=True)

        assert not result.ok
        assert result.message == "Purchase order saved but not submitted: Approval group not configured"
        assert result.data.po_number == purchase_order.po_number
        assert len(fake_api.sent("PUT", "/purchaseorder/1")) == 1

    async def test_edit_keeps_a_legacy_number(self, service, fake_api, purchase_order, draft):
        """
        POs numbered before the PO/<FY>/<seq> scheme (e.g. PO-1712345678901)
        stay editable: the number they already carry is not re-checked.
        """
        legacy = purchase_order.model_copy(update={"status": POStatus.DRAFT, "po_number": "PO-1712345678901"})
        fake_api.on("GET", "/purchaseorder/1", dump(legacy))
        fake_api.on("PUT", "/purchaseorder/1", echo_body)

        result = await service.update(1, draft)
        assert result.ok, result.message
        assert fake_api.body("PUT", "/purchaseorder/1")["poNumber"] == "PO-1712345678901"

        result = await service.update(1, draft.model_copy(update={"po_number": "PO-1712345678901"}))
        assert result.ok, result.message

    async def test_edit_to_a_malformed_number_is_refused(self, service, fake_api, purchase_order, draft):
        fake_api.on("GET", "/purchaseorder/1", dump(purchase_order.model_copy(update={"status": POStatus.DRAFT})))
        result = await service.update(1, draft.model_copy(update={"po_number": "PO-42"}))

        assert not result.ok
        assert result.error_kind == "validation"
        assert fake_api.sent("PUT", "/purchaseorder/1") == []

    async def test_record_receipt_partial(self, service, fake_api, approved_po, po_item):
        items = [po_item.model_copy(update={"received_quantity": Decimal("1")})]
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po.model_copy(update={"items": items})))
        fake_api.on("PUT", "/purchaseorder/1", echo_body)

        result = await service.record_receipt(1)

        assert result.ok
        assert result.data.status == POStatus.PARTIALLY_DELIVERED

    async def test_delete_only_drafts(self, service, fake_api, approved_po):
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        result = await service.delete(1)
        assert not result.ok
        assert fake_api.sent("DELETE", "/purchaseorder/1") == []


class TestReads:

    async def test_empty_answer_is_not_found(self, service, fake_api):
        fake_api.on("GET", "/purchaseorder/5", httpx.Response(200))
        with pytest.raises(DocumentNotFound):
            await service.get(5)

    async def test_null_amounts_read_as_zero(self, service, fake_api, purchase_order):
        """The API sends null for rates and amounts nobody filled in."""
        payload = dump(purchase_order)
        payload["items"][0].update({"tax2Rate": None, "tax2Amount": None})
        payload.update({"discountAmount": None, "isGrnCreated": None})
        fake_api.on("GET", "/purchaseorder/1", payload)
        fake_api.on("POST", "/purchaseorder/1/reject", payload)

        result = await service.reject(1, "Wrong supplier")

        assert result.ok, result.message
        assert result.data.items[0].tax2_rate == Decimal("0")
        assert result.data.discount_amount == Decimal("0")
        assert result.data.is_grn_created is False

    async def test_malformed_document_is_an_upstream_error(self, service, fake_api):
        fake_api.on("GET", "/purchaseorder/1", {"id": 1, "status": "SUBMITTED"})

        with pytest.raises(UpstreamAPIError) as excinfo:
            await service.get(1)
        assert excinfo.value.status_code == 502
        assert any(error["field"] == "poNumber" for error in excinfo.value.errors)

        result = await service.reject(1, "Wrong supplier")
        assert not result.ok
        assert result.status_code == 502

    async def test_search_uses_search_term(self, service, fake_api, purchase_order):
        fake_api.on("GET", "/purchaseorder/search", [dump(purchase_order)])
        found = await service.search("Acme")
        assert found[0].id == purchase_order.id
        assert fake_api.requests[0].url.params["searchTerm"] == "Acme"

    async def test_date_range_order(self, service):
        with pytest.raises(DocumentValidationError):
            await service.date_range(date(2024, 6, 2), date(2024, 6, 1))

    def test_actions_of_approved_po(self, service, approved_po):
        actions = service.available_actions(approved_po).actions
        assert actions == ["cancel", "create_grn", "create_invoice", "export_pdf"]

    def test_actions_of_submitted_po(self, service, purchase_order):
        actions = service.available_actions(purchase_order).actions
        assert actions == ["submit", "approve", "reject", "export_pdf"]

    async def test_export_is_archived(self, service, fake_api, purchase_order):
        fake_api.on("GET", "/purchaseorder/1", dump(purchase_order))
        fake_api.on("GET", "/purchaseorder/1/export/pdf", b"%PDF-1.4")

        content, filename, storage_key = await service.export_pdf(1)

        assert content == b"%PDF-1.4"
        assert filename == "PO-2024-2025-001.pdf"
        assert storage_key.startswith("purchase-orders/")
        assert service.storage.download(storage_key) == b"%PDF-1.4"

    async def test_export_survives_archive_failure(self, api, failing_storage, fake_api, purchase_order):
        """The PDF still reaches the caller when the archive copy cannot be written."""
        service = PurchaseOrderService(api, failing_storage)
        fake_api.on("GET", "/purchaseorder/1", dump(purchase_order))
        fake_api.on("GET", "/purchaseorder/1/export/pdf", b"%PDF-1.4")

        content, filename, storage_key = await service.export_pdf(1)

        assert content == b"%PDF-1.4"
        assert filename == "PO-2024-2025-001.pdf"
        assert storage_key is None
