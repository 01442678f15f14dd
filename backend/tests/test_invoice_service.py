from datetime import date, timedelta
from decimal import Decimal

import httpx
import pytest

from procuredesk.schemas.invoice import InvoiceCreate, InvoiceDecisionRequest, InvoiceStatus, PaymentRequest
from procuredesk.services.invoice_service import InvoiceService, validate_invoice_draft
from procuredesk.exceptions import DocumentValidationError

from conftest import dump, echo_body

pytestmark = pytest.mark.anyio


@pytest.fixture
def service(api, storage):
    return InvoiceService(api, storage)


class TestDraftValidation:

    def test_cannot_bill_more_than_accepted(self, invoice):
        item = invoice.items[0].model_copy(update={"grn_quantity": Decimal("1")})
        with pytest.raises(DocumentValidationError, match="cannot exceed accepted quantity"):
            validate_invoice_draft(invoice.model_copy(update={"items": [item]}))

    def test_due_date_after_invoice_date(self, invoice):
        with pytest.raises(DocumentValidationError, match="Due date"):
            validate_invoice_draft(invoice.model_copy(update={"due_date": date(2024, 6, 1)}))


class TestCreate:

    async def test_lines_derived_from_grn_and_po(self, service, fake_api, approved_po, grn):
        fake_api.on("GET", "/grn/5", dump(grn))
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("POST", "/invoice", echo_body)

        result = await service.create(InvoiceCreate(invoice_number="INV-1001", grn_id=5, invoice_date=date(2024, 7, 1)))

        assert result.ok, result.message
        assert result.status_code == 201
        body = fake_api.body("POST", "/invoice")
        assert body["poId"] == 1
        assert body["grnId"] == 5
        assert body["grandTotal"] == 472000.0
        assert body["dueDate"] == "2024-07-31"

    async def test_fully_rejected_grn_line_is_not_billed(self, service, fake_api, approved_po, grn):
        """
        A GRN line whose whole receipt was rejected has nothing to bill; the
        invoice carries the accepted lines only and still saves.
        """
        rejected = grn.items[0].model_copy(update={
            "id": 52,
            "po_item_id": 12,
            "item_name": "Docking station",
            "accepted_quantity": Decimal("0"),
            "rejected_quantity": Decimal("2"),
            "pending_quantity": Decimal("2"),
            "total_value": Decimal("0"),
        })
        fake_api.on("GET", "/grn/5", dump(grn.model_copy(update={"items": [grn.items[0], rejected]})))
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("POST", "/invoice", echo_body)

        result = await service.create(InvoiceCreate(invoice_number="INV-1002", grn_id=5, invoice_date=date(2024, 7, 1)))

        assert result.ok, result.message
        body = fake_api.body("POST", "/invoice")
        assert [item["grnItemId"] for item in body["items"]] == [51]
        assert body["grandTotal"] == 472000.0

    async def test_grn_with_nothing_accepted(self, service, fake_api, approved_po, grn):
        line = grn.items[0].model_copy(update={"accepted_quantity": Decimal("0"), "rejected_quantity": Decimal("2")})
        fake_api.on("GET", "/grn/5", dump(grn.model_copy(update={"items": [line]})))
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))

        result = await service.create(InvoiceCreate(invoice_number="INV-1003", grn_id=5))

        assert not result.ok
        assert result.error_kind == "validation"
        assert "no accepted items" in result.message
        assert fake_api.sent("POST", "/invoice") == []

    async def test_missing_grn(self, service, fake_api):
        result = await service.create(InvoiceCreate(invoice_number="INV-1", grn_id=77))
        assert not result.ok
        assert result.status_code == 404
        assert result.message == "GRN 77 not found"

    async def test_create_and_submit_partial_failure(self, service, fake_api, approved_po):
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("POST", "/invoice", lambda request: {**echo_body(request), "id": 9})
        fake_api.on("PUT", "/invoice/9/submit", httpx.Response(502))

        result = await service.create(InvoiceCreate(invoice_number="INV-2", po_id=1, submit=True))

        assert not result.ok
        assert result.message == "Invoice saved but not submitted: Bad Gateway"
        assert result.data.id == 9


class TestApprovalAndPayment:

    async def test_approve(self, service, fake_api, invoice):
        submitted = invoice.model_copy(update={"status": InvoiceStatus.SUBMITTED})
        fake_api.on("GET", "/invoice/9", dump(submitted))
        fake_api.on("PUT", "/invoice/9/approve", dump(invoice))

        result = await service.approve(9, InvoiceDecisionRequest(approved_by="meera", comments="ok"))

        assert result.ok
        assert fake_api.body("PUT", "/invoice/9/approve") == {"comments": "ok", "approvedBy": "meera"}

    async def test_hold_requires_reason(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice))
        result = await service.hold(9, "")
        assert not result.ok
        assert result.error_kind == "missing_input"

    async def test_hold_keeps_reason(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice))
        fake_api.on("PUT", "/invoice/9", echo_body)
        result = await service.hold(9, "Awaiting credit note")
        assert result.data.status == InvoiceStatus.ON_HOLD
        assert result.data.hold_reason == "Awaiting credit note"

    async def test_partial_payment(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice))
        fake_api.on("POST", "/invoice/9/payment", dump(invoice.model_copy(update={
            "status": InvoiceStatus.PARTIALLY_PAID,
            "paid_amount": Decimal("100000"),
            "balance_amount": Decimal("372000"),
        })))

        result = await service.record_payment(9, PaymentRequest(payment_amount=Decimal("99999.999"), payment_date=date(2024, 8, 1)))

        assert result.ok
        assert result.message == "Payment recorded"
        body = fake_api.body("POST", "/invoice/9/payment")
        assert body["paymentAmount"] == 100000.0
        assert body["paymentDate"] == "2024-08-01"

    async def test_full_payment(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice))
        fake_api.on("POST", "/invoice/9/payment", dump(invoice.model_copy(update={"status": InvoiceStatus.PAID})))
        result = await service.record_payment(9, PaymentRequest(payment_amount=Decimal("472000")))
        assert result.message == "Payment recorded, invoice fully paid"

    async def test_overpayment_is_refused(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice))
        result = await service.record_payment(9, PaymentRequest(payment_amount=Decimal("472000.01")))
        assert not result.ok
        assert "exceeds balance" in result.message
        assert fake_api.sent("POST", "/invoice/9/payment") == []

    async def test_mark_overdue_before_due_date(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice.model_copy(update={"due_date": date(2024, 7, 31)})))
        result = await service.mark_overdue(9, today=date(2024, 7, 31))
        assert not result.ok
        assert "not past its due date" in result.message

    async def test_mark_overdue(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice.model_copy(update={"due_date": date(2024, 7, 31)})))
        fake_api.on("PUT", "/invoice/9", echo_body)
        result = await service.mark_overdue(9, today=date(2024, 8, 1))
        assert result.data.status == InvoiceStatus.OVERDUE


class TestThreeWayMatch:

    async def test_match_is_recorded(self, service, fake_api, invoice, approved_po, grn):
        fake_api.on("GET", "/invoice/9", dump(invoice))
        fake_api.on("GET", "/grn/5", dump(grn))
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("PUT", "/invoice/9", echo_body)

        result = await service.match(9)

        assert result.ok
        assert result.data.match.overall_match
        assert result.data.invoice.status == InvoiceStatus.THREE_WAY_MATCHED
        assert fake_api.body("PUT", "/invoice/9")["threeWayMatchStatus"] == "MATCHED"

    async def test_deleted_grn_is_a_mismatch(self, service, fake_api, invoice, approved_po):
        fake_api.on("GET", "/invoice/9", dump(invoice))
        fake_api.on("GET", "/purchaseorder/1", dump(approved_po))
        fake_api.on("PUT", "/invoice/9", echo_body)

        result = await service.match(9)

        assert result.ok
        assert result.data.invoice.status == InvoiceStatus.THREE_WAY_MISMATCH
        assert result.message.startswith("Three-way mismatch: GRN")

    async def test_match_needs_approved_invoice(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice.model_copy(update={"status": InvoiceStatus.DRAFT})))
        result = await service.match(9)
        assert not result.ok
        assert result.status_code == 409


class TestAttachmentsAndActions:

    async def test_empty_attachment(self, service):
        result = await service.upload_attachment(9, "scan.pdf", b"", "application/pdf")
        assert not result.ok
        assert result.message == "Attachment is empty"

    async def test_attachment_refetches_invoice(self, service, fake_api, invoice):
        fake_api.on("GET", "/invoice/9", dump(invoice.model_copy(update={"attachment_path": "invoices/9/scan.pdf"})))
        fake_api.on("POST", "/invoice/9/attachment", {"path": "invoices/9/scan.pdf"})

        result = await service.upload_attachment(9, "scan.pdf", b"%PDF", "application/pdf")

        assert result.ok
        assert result.data.attachment_path == "invoices/9/scan.pdf"
        assert len(fake_api.sent("GET", "/invoice/9")) == 2

    def test_overdue_offered_only_past_due(self, service, invoice):
        not_due = invoice.model_copy(update={"due_date": date.today() + timedelta(days=1)})
        past_due = invoice.model_copy(update={"due_date": date.today() - timedelta(days=1)})
        assert "mark_overdue" not in service.available_actions(not_due).actions
        assert "mark_overdue" in service.available_actions(past_due).actions

    def test_match_offered_only_with_grn(self, service, invoice):
        assert "three_way_match" in service.available_actions(invoice).actions
        assert "three_way_match" not in service.available_actions(invoice.model_copy(update={"grn_id": None})).actions
