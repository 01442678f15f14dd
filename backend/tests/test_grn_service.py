from decimal import Decimal

import httpx
import pytest

from procuredesk.schemas.grn import (
    GRNCreate,
    GRNDecisionRequest,
    GRNItemInput,
    GRNLineEdit,
    GRNStatus,
    QualityCheckLine,
    QualityCheckRequest,
    QualityStatus,
)
from procuredesk.services.grn_service import GRNService

from conftest import dump, echo_body

pytestmark = pytest.mark.anyio


@pytest.fixture
def service(api, storage):
    return GRNService(api, storage)


@pytest.fixture
def draft_grn(grn):
    return grn.model_copy(update={"status": GRNStatus.DRAFT})


class TestCreateFromPO:

    async def test_receive_against_approved_po(self, service, fake_api, approved_po):
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("POST", "/grn", echo_body)

        result = await service.create_from_po(GRNCreate(po_id=1, received_by="store"))

        assert result.ok
        assert result.status_code == 201
        body = fake_api.body("POST", "/grn")
        assert body["status"] == "DRAFT"
        assert body["items"][0]["acceptedQuantity"] == 2.0
        assert body["totalReceivedValue"] == 400000.0

    async def test_po_not_approved(self, service, fake_api, purchase_order):
        fake_api.on("GET", "/purchaseorder/1", dump(purchase_order))
        result = await service.create_from_po(GRNCreate(po_id=1))

        assert not result.ok
        assert result.status_code == 409
        assert fake_api.sent("POST", "/grn") == []

    async def test_save_and_approve(self, service, fake_api, approved_po, grn):
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("POST", "/grn", lambda request: {**echo_body(request), "id": 5})
        fake_api.on("PUT", "/grn/5/approve", dump(grn))

        result = await service.create_from_po(GRNCreate(po_id=1, received_by="store", approve=True))

        assert result.ok
        assert result.status_code == 201
        assert result.message == "GRN created and approved successfully"
        assert fake_api.body("PUT", "/grn/5/approve")["approvedBy"] == "store"

    async def test_save_and_approve_partial_failure(self, service, fake_api, approved_po):
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("POST", "/grn", lambda request: {**echo_body(request), "id": 5})
        fake_api.on("PUT", "/grn/5/approve", httpx.Response(403, json={"message": "Not an approver"}))

        result = await service.create_from_po(GRNCreate(po_id=1, approve=True))

        assert not result.ok
        assert result.message == "GRN saved but not approved: Not an approver"
        assert result.data.id == 5

    async def test_only_listed_lines_are_received(self, service, fake_api, approved_po, po_item):
        second = po_item.model_copy(update={"id": 12, "item_name": "Dock"})
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po.model_copy(update={"items": [po_item, second]})))
        fake_api.on("POST", "/grn", echo_body)

        data = GRNCreate(po_id=1, items=[GRNItemInput(po_item_id=12, received_quantity=Decimal("1"))])
        result = await service.create_from_po(data)

        assert result.ok
        assert [item["poItemId"] for item in fake_api.body("POST", "/grn")["items"]] == [12]


class TestEdits:

    async def test_edit_line(self, service, fake_api, draft_grn):
        fake_api.on("GET", "/grn/5", dump(draft_grn))
        fake_api.on("PUT", "/grn/5", echo_body)

        result = await service.edit_line(5, 51, GRNLineEdit(field="rejectedQuantity", value=Decimal("1")))

        assert result.ok
        line = result.data.items[0]
        assert (line.accepted_quantity, line.rejected_quantity, line.pending_quantity) == (1, 1, 1)
        assert result.data.total_received_value == Decimal("200000")

    async def test_line_edit_beyond_po_quantity_is_not_saved(self, service, fake_api, draft_grn):
        """
        A saved line edit goes through the same receipt checks as a full update:
        receiving 10 against a PO quantity of 2 is refused before anything is sent.
        """
        fake_api.on("GET", "/grn/5", dump(draft_grn))
        fake_api.on("PUT", "/grn/5", echo_body)

        result = await service.edit_line(5, 51, GRNLineEdit(field="receivedQuantity", value=Decimal("10")))

        assert not result.ok
        assert result.error_kind == "validation"
        assert "cannot exceed PO quantity" in result.message
        assert fake_api.sent("PUT", "/grn/5") == []

    async def test_approved_grn_is_not_editable(self, service, fake_api, grn):
        fake_api.on("GET", "/grn/5", dump(grn))
        result = await service.edit_line(5, 51, GRNLineEdit(field="rejectedQuantity", value=Decimal("1")))
        assert not result.ok
        assert result.error_kind == "illegal_transition"

    async def test_unknown_line(self, service, fake_api, draft_grn):
        fake_api.on("GET", "/grn/5", dump(draft_grn))
        result = await service.edit_line(5, 99, GRNLineEdit(field="receivedQuantity", value=Decimal("1")))
        assert not result.ok
        assert "no item 99" in result.message


class TestStatusActions:

    async def test_submit(self, service, fake_api, draft_grn):
        fake_api.on("GET", "/grn/5", dump(draft_grn))
        fake_api.on("PUT", "/grn/5", echo_body)

        result = await service.submit(5)

        assert result.ok
        assert result.data.status == GRNStatus.PENDING_APPROVAL

    async def test_reject_requires_reason(self, service, fake_api, draft_grn):
        pending = draft_grn.model_copy(update={"status": GRNStatus.PENDING_APPROVAL})
        fake_api.on("GET", "/grn/5", dump(pending))
        result = await service.reject(5, None)
        assert not result.ok
        assert result.error_kind == "missing_input"

    async def test_cancel_keeps_reason_in_remarks(self, service, fake_api, draft_grn):
        fake_api.on("GET", "/grn/5", dump(draft_grn))
        fake_api.on("PUT", "/grn/5", echo_body)

        result = await service.cancel(5, "Wrong PO")

        assert result.ok
        assert fake_api.body("PUT", "/grn/5")["remarks"] == "Wrong PO"
        assert result.data.status == GRNStatus.CANCELLED

    async def test_record_receipt(self, service, fake_api, grn):
        fake_api.on("GET", "/grn/5", dump(grn))
        fake_api.on("PUT", "/grn/5", echo_body)
        result = await service.record_receipt(5)
        assert result.data.status == GRNStatus.FULLY_RECEIVED

    async def test_quality_check_rolls_up(self, service, fake_api, grn):
        """A received GRN is moved into the check and failed if any line failed."""
        fake_api.on("GET", "/grn/5", dump(grn))
        fake_api.on("PUT", "/grn/5/quality-check", lambda request: {
            **dump(grn), "status": echo_body(request)["status"],
        })

        result = await service.quality_check(5, QualityCheckRequest(
            remarks="Screen cracked",
            items=[QualityCheckLine(id=51, quality_status=QualityStatus.FAILED)],
        ))

        assert result.ok
        assert result.message == "Quality check failed"
        body = fake_api.body("PUT", "/grn/5/quality-check")
        assert body["status"] == "QUALITY_CHECK_FAILED"
        assert body["items"] == [{"id": 51, "qualityStatus": "FAILED", "qualityRemarks": None}]

    async def test_quality_check_incomplete(self, service, fake_api, grn):
        fake_api.on("GET", "/grn/5", dump(grn))
        result = await service.quality_check(5, QualityCheckRequest(items=[]))
        assert not result.ok
        assert "still pending" in result.message

    def test_actions_offer_invoice_once(self, service, grn):
        assert "create_invoice" in service.available_actions(grn).actions
        invoiced = grn.model_copy(update={"is_invoice_created": True})
        assert "create_invoice" not in service.available_actions(invoiced).actions
