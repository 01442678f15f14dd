"""
Invoice workflow: create (directly, from a PO and/or a GRN), edit, submit,
approval, hold, cancel, three-way match, payments and attachments.
"""
import logging
from datetime import date
from typing import Any, List, Optional, Tuple
from procuredesk.exceptions import (
    DocumentNotFound,
    DocumentValidationError,
    ProcureDeskError,
    UpstreamAPIError,
    WorkflowError,
)
from procuredesk.schemas.common import AvailableActions, CommandResult, Page
from procuredesk.schemas.grn import GRN
from procuredesk.schemas.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceDecisionRequest,
    InvoiceStatus,
    PaymentRequest,
)
from procuredesk.schemas.matching import InvoiceMatchOutcome
from procuredesk.schemas.po import PurchaseOrder
from procuredesk.services.api_client import ProcurementAPIClient, parse_document, parse_list, parse_page, to_payload
from procuredesk.services.document_bridge import DocumentBridge
from procuredesk.services.matching_service import three_way_match
from procuredesk.services.storage_service import StorageService
from procuredesk.utils.pricing import ZERO, recalculate_invoice, round_money
from procuredesk.utils.workflow import INVOICE_WORKFLOW

logger = logging.getLogger(__name__)

BASE = "/invoice"


def validate_invoice_draft(invoice: Invoice) -> None:
    """
    Raises:
        DocumentValidationError listing every problem found
    """
    errors = []
    if not invoice.invoice_number.strip():
        errors.append({"field": "invoiceNumber", "message": "Invoice number is required"})
    if invoice.supplier_id is None and not (invoice.supplier_name or "").strip():
        errors.append({"field": "supplierId", "message": "Please select a supplier"})
    if not invoice.items and invoice.grn_id is not None:
        errors.append({"field": "items", "message": f"GRN {invoice.grn_number or invoice.grn_id} has no accepted items to invoice"})
    for index, item in enumerate(invoice.items, start=1):
        if item.invoice_quantity <= 0:
            errors.append({"field": f"items[{index}].invoiceQuantity", "message": f"Item {index}: invoice quantity must be greater than zero"})
        if item.grn_quantity is not None and item.invoice_quantity > item.grn_quantity:
            errors.append({"field": f"items[{index}].invoiceQuantity", "message": f"Item {index}: invoice quantity cannot exceed accepted quantity {item.grn_quantity}"})
    if invoice.invoice_date and invoice.due_date and invoice.due_date < invoice.invoice_date:
        errors.append({"field": "dueDate", "message": "Due date cannot be before invoice date"})
    if errors:
        raise DocumentValidationError(errors[0]["message"], errors)


class InvoiceService:
    """Invoice operations against the procurement API"""

    def __init__(
        self,
        api: ProcurementAPIClient,
        storage: Optional[StorageService] = None,
        bridge: Optional[DocumentBridge] = None,
    ):
        self.api = api
        self.storage = storage
        self.bridge = bridge or DocumentBridge()

    async def get(self, invoice_id: int) -> Invoice:
        payload = await self.api.get(f"{BASE}/{invoice_id}")
        if not payload:
            raise DocumentNotFound("Invoice", invoice_id)
        return parse_document(payload, Invoice)

    async def list(self, page: int = 0, size: int = 20, **filters: Any) -> Page[Invoice]:
        payload = await self.api.get(BASE, params={"page": page, "size": size, **filters})
        return parse_page(payload, Invoice)

    async def by_purchase_order(self, po_id: int) -> List[Invoice]:
        return parse_list(await self.api.get(f"{BASE}/purchase-order/{po_id}"), Invoice)

    async def by_grn(self, grn_id: int) -> List[Invoice]:
        return parse_list(await self.api.get(f"{BASE}/grn/{grn_id}"), Invoice)

    def available_actions(self, invoice: Invoice) -> AvailableActions:
        actions = INVOICE_WORKFLOW.available_actions(invoice.status)
        if "mark_overdue" in actions and not (invoice.due_date and invoice.due_date < date.today()):
            actions.remove("mark_overdue")
        if "three_way_match" in actions and invoice.grn_id is None:
            actions.remove("three_way_match")
        actions.append("download")
        return AvailableActions(document_type="invoice", document_id=invoice.id, status=invoice.status.value, actions=actions)

    async def _load_po(self, po_id: Optional[int]) -> Optional[PurchaseOrder]:
        if po_id is None:
            return None
        try:
            payload = await self.api.get(f"/purchaseorder/{po_id}")
        except UpstreamAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return parse_document(payload, PurchaseOrder) if payload else None

    async def _load_grn(self, grn_id: Optional[int]) -> Optional[GRN]:
        if grn_id is None:
            return None
        try:
            payload = await self.api.get(f"/grn/{grn_id}")
        except UpstreamAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return parse_document(payload, GRN) if payload else None

    async def _save(self, invoice: Invoice) -> Invoice:
        return parse_document(await self.api.put(f"{BASE}/{invoice.id}", json=to_payload(invoice)), Invoice)

    async def create(self, data: InvoiceCreate) -> CommandResult[Invoice]:
        """
        Create an invoice draft, deriving lines from the linked GRN or PO when the
        caller supplies none. With data.submit set it is submitted straight away.
        """
        try:
            grn = await self._load_grn(data.grn_id)
            if data.grn_id is not None and grn is None:
                raise DocumentNotFound("GRN", data.grn_id)
            po_id = data.po_id if data.po_id is not None else (grn.po_id if grn else None)
            po = await self._load_po(po_id)
            if po_id is not None and po is None:
                raise DocumentNotFound("Purchase order", po_id)

            invoice = self.bridge.invoice_from_sources(data, po=po, grn=grn)
            validate_invoice_draft(invoice)
            created = parse_document(await self.api.post(BASE, json=to_payload(invoice)), Invoice)
        except ProcureDeskError as e:
            logger.warning(f"Failed to create invoice {data.invoice_number}: {e.message}")
            return CommandResult.failure(e)
        logger.info(
            f"Created invoice {created.invoice_number} (ID {created.id}) "
            f"for PO {created.po_number}, GRN {created.grn_number}, grand total {created.grand_total}"
        )

        if not data.submit:
            return CommandResult.success("Invoice created successfully", created, status_code=201)

        result = await self.submit(created.id, current=created)
        if not result.ok:
            result.message = f"Invoice saved but not submitted: {result.message}"
            result.data = created
            return result
        result.message = "Invoice created and submitted successfully"
        result.status_code = 201
        return result

    async def update(self, invoice_id: int, invoice: Invoice) -> CommandResult[Invoice]:
        try:
            current = await self.get(invoice_id)
            INVOICE_WORKFLOW.check(current.status, "edit")
            invoice = recalculate_invoice(invoice.model_copy(update={
                "id": current.id,
                "status": current.status,
                "paid_amount": current.paid_amount,
            }))
            validate_invoice_draft(invoice)
            updated = await self._save(invoice)
        except ProcureDeskError as e:
            logger.warning(f"Failed to update invoice {invoice_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Updated invoice {updated.invoice_number}")
        return CommandResult.success("Invoice updated successfully", updated)

    async def _advance(
        self,
        invoice: Invoice,
        action: str,
        message: str,
        reason: Optional[str] = None,
        **changes: Any,
    ) -> CommandResult[Invoice]:
        try:
            status = INVOICE_WORKFLOW.next_status(invoice.status, action, reason=reason)
            updated = await self._save(invoice.model_copy(update={"status": InvoiceStatus(status), **changes}))
        except ProcureDeskError as e:
            logger.warning(f"Failed to {action} invoice {invoice.invoice_number}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Invoice {updated.invoice_number} is now {updated.status.value}")
        return CommandResult.success(message, updated)

    async def _fetch(self, invoice_id: int) -> Tuple[Optional[Invoice], Optional[CommandResult]]:
        try:
            return await self.get(invoice_id), None
        except ProcureDeskError as e:
            return None, CommandResult.failure(e)

    async def submit(self, invoice_id: int, current: Optional[Invoice] = None) -> CommandResult[Invoice]:
        try:
            invoice = current or await self.get(invoice_id)
            INVOICE_WORKFLOW.check(invoice.status, "submit", items=invoice.items)
            validate_invoice_draft(invoice)
            submitted = parse_document(await self.api.put(f"{BASE}/{invoice_id}/submit"), Invoice)
        except ProcureDeskError as e:
            logger.warning(f"Failed to submit invoice {invoice_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Submitted invoice {submitted.invoice_number}")
        return CommandResult.success("Invoice submitted successfully", submitted)

    async def request_approval(self, invoice_id: int) -> CommandResult[Invoice]:
        invoice, failure = await self._fetch(invoice_id)
        if failure:
            return failure
        return await self._advance(invoice, "request_approval", "Invoice sent for approval")

    async def approve(self, invoice_id: int, request: InvoiceDecisionRequest) -> CommandResult[Invoice]:
        try:
            invoice = await self.get(invoice_id)
            INVOICE_WORKFLOW.check(invoice.status, "approve", approved_by=request.approved_by)
            approved = parse_document(await self.api.put(
                f"{BASE}/{invoice_id}/approve",
                json={"comments": request.comments, "approvedBy": request.approved_by},
            ), Invoice)
        except ProcureDeskError as e:
            logger.warning(f"Failed to approve invoice {invoice_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Approved invoice {approved.invoice_number} by {request.approved_by}")
        return CommandResult.success("Invoice approved successfully", approved)

    async def reject(self, invoice_id: int, reason: Optional[str]) -> CommandResult[Invoice]:
        try:
            invoice = await self.get(invoice_id)
            INVOICE_WORKFLOW.check(invoice.status, "reject", reason=reason)
            rejected = parse_document(
                await self.api.put(f"{BASE}/{invoice_id}/reject", json={"reason": reason.strip()}),
                Invoice,
            )
        except ProcureDeskError as e:
            logger.warning(f"Failed to reject invoice {invoice_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Rejected invoice {rejected.invoice_number}: {reason}")
        return CommandResult.success("Invoice rejected", rejected)

    async def hold(self, invoice_id: int, reason: Optional[str]) -> CommandResult[Invoice]:
        invoice, failure = await self._fetch(invoice_id)
        if failure:
            return failure
        return await self._advance(invoice, "hold", "Invoice put on hold", reason=reason, hold_reason=reason)

    async def cancel(self, invoice_id: int, reason: Optional[str]) -> CommandResult[Invoice]:
        invoice, failure = await self._fetch(invoice_id)
        if failure:
            return failure
        return await self._advance(invoice, "cancel", "Invoice cancelled", reason=reason, remarks=reason)

    async def mark_overdue(self, invoice_id: int, today: Optional[date] = None) -> CommandResult[Invoice]:
        invoice, failure = await self._fetch(invoice_id)
        if failure:
            return failure
        today = today or date.today()
        if not invoice.due_date or invoice.due_date >= today:
            return CommandResult.failure(WorkflowError(
                "invoice",
                invoice.status.value,
                "mark_overdue",
                f"Invoice {invoice.invoice_number} is not past its due date",
            ))
        return await self._advance(invoice, "mark_overdue", "Invoice marked overdue")

    async def match(self, invoice_id: int) -> CommandResult[InvoiceMatchOutcome]:
        """
        Three-way match the invoice against its PO and GRN and record the
        outcome (THREE_WAY_MATCHED or THREE_WAY_MISMATCH) on the invoice.
        """
        try:
            invoice = await self.get(invoice_id)
            INVOICE_WORKFLOW.check(invoice.status, "three_way_match")
            grn = await self._load_grn(invoice.grn_id)
            po = await self._load_po(invoice.po_id if invoice.po_id is not None else (grn.po_id if grn else None))

            result = three_way_match(invoice, po, grn)
            outcome = InvoiceStatus.THREE_WAY_MATCHED if result.overall_match else InvoiceStatus.THREE_WAY_MISMATCH
            status = INVOICE_WORKFLOW.next_status(invoice.status, "three_way_match", outcome)
            updated = await self._save(invoice.model_copy(update={
                "status": InvoiceStatus(status),
                "three_way_match_status": result.status.upper(),
                "three_way_match_remarks": result.remarks,
            }))
        except ProcureDeskError as e:
            logger.warning(f"Failed to three-way match invoice {invoice_id}: {e.message}")
            return CommandResult.failure(e)

        logger.info(f"Three-way match for invoice {updated.invoice_number}: {result.status} ({len(result.issues)} issues)")
        message = "Invoice matched PO and GRN" if result.overall_match else f"Three-way mismatch: {result.remarks}"
        return CommandResult.success(message, InvoiceMatchOutcome(invoice=updated, match=result))

    async def record_payment(self, invoice_id: int, payment: PaymentRequest) -> CommandResult[Invoice]:
        """
        Record a payment; the invoice becomes PAID once nothing is left to pay,
        PARTIALLY_PAID otherwise
        """
        try:
            invoice = await self.get(invoice_id)
            amount = round_money(payment.payment_amount)
            balance = invoice.grand_total - invoice.paid_amount
            remaining = balance - amount
            outcome = InvoiceStatus.PAID if remaining <= ZERO else InvoiceStatus.PARTIALLY_PAID
            INVOICE_WORKFLOW.next_status(
                invoice.status,
                "record_payment",
                outcome,
                payment_amount=amount,
                balance_amount=balance,
            )
            body = to_payload(payment.model_copy(update={
                "payment_amount": amount,
                "payment_date": payment.payment_date or date.today(),
            }))
            paid = parse_document(await self.api.post(f"{BASE}/{invoice_id}/payment", json=body), Invoice)
        except ProcureDeskError as e:
            logger.warning(f"Failed to record payment on invoice {invoice_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Recorded payment of {amount} on invoice {paid.invoice_number}, balance {paid.balance_amount}")
        return CommandResult.success(
            "Payment recorded, invoice fully paid" if outcome == InvoiceStatus.PAID else "Payment recorded",
            paid,
        )

    async def upload_attachment(
        self,
        invoice_id: int,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> CommandResult[Invoice]:
        try:
            if not content:
                raise DocumentValidationError("Attachment is empty")
            await self.get(invoice_id)
            payload = await self.api.upload(f"{BASE}/{invoice_id}/attachment", filename, content, content_type)
            invoice = parse_document(payload, Invoice) if isinstance(payload, dict) and payload.get("invoiceNumber") \
                else await self.get(invoice_id)
        except ProcureDeskError as e:
            logger.warning(f"Failed to upload attachment to invoice {invoice_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Uploaded attachment {filename} to invoice {invoice.invoice_number}")
        return CommandResult.success("Attachment uploaded successfully", invoice)

    async def download(self, invoice_id: int) -> Tuple[bytes, str, Optional[str]]:
        invoice = await self.get(invoice_id)
        content = await self.api.download(f"{BASE}/{invoice_id}/download")
        filename = f"{invoice.invoice_number.replace('/', '-')}.pdf"
        storage_key = self.storage.archive_export(content, "invoices", filename) if self.storage is not None else None
        return content, filename, storage_key
