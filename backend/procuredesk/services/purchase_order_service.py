"""
Purchase order workflow: create (direct or from an RFP), edit, submit, approve,
reject, cancel, delete, export and lookups.

Reads raise domain exceptions. Mutations return a CommandResult so the caller
decides how success or failure is reported.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
from pydantic import ValidationError
from procuredesk.exceptions import DocumentNotFound, DocumentValidationError, ProcureDeskError
from procuredesk.schemas.common import AvailableActions, CommandResult, Page
from procuredesk.schemas.po import (
    POApproveRequest,
    POCreate,
    POStatus,
    PurchaseOrder,
    RFP,
)
from procuredesk.services.api_client import ProcurementAPIClient, parse_document, parse_list, parse_page, to_payload
from procuredesk.services.document_bridge import DocumentBridge
from procuredesk.services.storage_service import StorageService
from procuredesk.utils.document_numbers import parse_po_number
from procuredesk.utils.pricing import recalculate_purchase_order
from procuredesk.utils.receipt import outstanding_quantity
from procuredesk.utils.workflow import PURCHASE_ORDER_WORKFLOW

logger = logging.getLogger(__name__)

BASE = "/purchaseorder"

# Statuses from which goods may be received or invoiced against the PO
RECEIVABLE = {POStatus.APPROVED, POStatus.PARTIALLY_DELIVERED}
INVOICEABLE = {POStatus.APPROVED, POStatus.PARTIALLY_DELIVERED, POStatus.DELIVERED, POStatus.PARTIALLY_INVOICED}


def validate_po_draft(data: POCreate) -> None:
    """
    Checks run before a PO is created or saved.

    Raises:
        DocumentValidationError listing every problem found
    """
    errors = []
    if data.supplier_id is None and not (data.supplier_name or "").strip():
        errors.append({"field": "supplierId", "message": "Please select a supplier"})
    if not data.items:
        errors.append({"field": "items", "message": "Please add at least one item"})
    for index, item in enumerate(data.items, start=1):
        if not item.item_name.strip():
            errors.append({"field": f"items[{index}].itemName", "message": f"Item {index}: name is required"})
        if item.quantity <= 0:
            errors.append({"field": f"items[{index}].quantity", "message": f"Item {index}: quantity must be greater than zero"})
        if item.unit_price < 0:
            errors.append({"field": f"items[{index}].unitPrice", "message": f"Item {index}: unit price cannot be negative"})
    if data.po_date and data.delivery_date and data.delivery_date < data.po_date:
        errors.append({"field": "deliveryDate", "message": "Delivery date cannot be before PO date"})
    if errors:
        raise DocumentValidationError(errors[0]["message"], errors)


class PurchaseOrderService:
    """Purchase order operations against the procurement API"""

    def __init__(
        self,
        api: ProcurementAPIClient,
        storage: Optional[StorageService] = None,
        bridge: Optional[DocumentBridge] = None,
    ):
        self.api = api
        self.storage = storage
        self.bridge = bridge or DocumentBridge()

    # ---- reads ----

    async def get(self, po_id: int) -> PurchaseOrder:
        payload = await self.api.get(f"{BASE}/{po_id}")
        if not payload:
            raise DocumentNotFound("Purchase order", po_id)
        return parse_document(payload, PurchaseOrder)

    async def get_by_number(self, po_number: str) -> PurchaseOrder:
        payload = await self.api.get(f"{BASE}/number/{po_number}")
        if not payload:
            raise DocumentNotFound("Purchase order", po_number)
        return parse_document(payload, PurchaseOrder)

    async def list(self, page: int = 0, size: int = 20, **filters: Any) -> Page[PurchaseOrder]:
        payload = await self.api.get(BASE, params={"page": page, "size": size, **filters})
        return parse_page(payload, PurchaseOrder)

    async def by_status(self, status: POStatus) -> List[PurchaseOrder]:
        return parse_list(await self.api.get(f"{BASE}/status/{status.value}"), PurchaseOrder)

    async def by_supplier(self, supplier_id: int) -> List[PurchaseOrder]:
        return parse_list(await self.api.get(f"{BASE}/supplier/{supplier_id}"), PurchaseOrder)

    async def search(self, search_term: str) -> List[PurchaseOrder]:
        return parse_list(await self.api.get(f"{BASE}/search", params={"searchTerm": search_term}), PurchaseOrder)

    async def date_range(self, start_date: date, end_date: date) -> List[PurchaseOrder]:
        if end_date < start_date:
            raise DocumentValidationError("End date cannot be before start date")
        payload = await self.api.get(
            f"{BASE}/date-range",
            params={"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
        )
        return parse_list(payload, PurchaseOrder)

    async def approved_rfps(self) -> List[RFP]:
        """RFPs that are approved and ready to be turned into a PO"""
        return parse_list(await self.api.get(f"{BASE}/approved-rfps"), RFP)

    async def generate_number(self) -> str:
        number = await self.api.get(f"{BASE}/generate-number")
        if isinstance(number, dict):
            number = number.get("poNumber") or number.get("data")
        return str(number)

    def available_actions(self, po: PurchaseOrder) -> AvailableActions:
        """
        Workflow actions allowed in the PO's status, plus the follow-on documents
        that may still be raised against it
        """
        actions = PURCHASE_ORDER_WORKFLOW.available_actions(po.status)
        # Receipt and invoice progress is recorded by the procurement API
        actions = [a for a in actions if a not in ("record_receipt", "record_invoice", "close")]
        if po.status in RECEIVABLE and not po.is_grn_created:
            actions.append("create_grn")
        if po.status in INVOICEABLE and not po.is_invoice_created:
            actions.append("create_invoice")
        actions.append("export_pdf")
        return AvailableActions(document_type="purchase order", document_id=po.id, status=po.status.value, actions=actions)

    # ---- mutations ----

    async def _draft(
        self,
        data: POCreate,
        status: POStatus = POStatus.DRAFT,
        current_number: Optional[str] = None,
    ) -> PurchaseOrder:
        """
        Validated, recalculated PO ready to send upstream.

        Only a number the caller typed is checked against the PO/<FY>/<seq>
        format; the number a saved PO already carries is kept as it is.
        """
        validate_po_draft(data)
        po_number = data.po_number or current_number
        if data.po_number and data.po_number != current_number:
            parse_po_number(data.po_number)
        elif not po_number:
            po_number = await self.generate_number()
        fields = data.model_dump(exclude={"po_number"})
        return recalculate_purchase_order(PurchaseOrder(**fields, po_number=po_number, status=status))

    async def create(self, data: POCreate) -> CommandResult[PurchaseOrder]:
        try:
            po = await self._draft(data)
            created = parse_document(await self.api.post(BASE, json=to_payload(po)), PurchaseOrder)
        except ProcureDeskError as e:
            logger.warning(f"Failed to create purchase order: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Created purchase order {created.po_number} (ID {created.id}), grand total {created.grand_total}")
        return CommandResult.success("Purchase order created successfully", created, status_code=201)

    async def create_from_rfp(self, rfp_id: int, overrides: Optional[Dict[str, Any]] = None) -> CommandResult[PurchaseOrder]:
        """
        Raise a PO from the selected quotation of an approved RFP.

        Args:
            rfp_id: RFP to convert
            overrides: Header fields the user changed on the prefilled form
                (raisedBy, poDate, addresses, ...)
        """
        try:
            rfp = parse_document(await self.api.get(f"/rfp/{rfp_id}"), RFP)
            draft = self.bridge.po_from_rfp(rfp)
            if overrides:
                try:
                    draft = POCreate.model_validate({**to_payload(draft), **overrides})
                except ValidationError as e:
                    raise DocumentValidationError(
                        "Invalid purchase order details",
                        [{"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]} for err in e.errors()],
                    )
            po = await self._draft(draft)
            created = parse_document(
                await self.api.post(f"{BASE}/from-rfp/{rfp_id}", json=to_payload(po)),
                PurchaseOrder,
            )
        except ProcureDeskError as e:
            logger.warning(f"Failed to create purchase order from RFP {rfp_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Created purchase order {created.po_number} from RFP {rfp.rfp_number or rfp_id}")
        return CommandResult.success("Purchase order created from RFP successfully", created, status_code=201)

    async def update(self, po_id: int, data: POCreate, submit: bool = False) -> CommandResult[PurchaseOrder]:
        """
        Save an editable PO; with submit=True this is "Save & Submit".

        A failing submit after a successful save leaves the PO saved; the result
        reports the submit failure with the saved PO attached.
        """
        try:
            current = await self.get(po_id)
            PURCHASE_ORDER_WORKFLOW.check(current.status, "edit")
            po = await self._draft(data, current.status, current.po_number)
            po = po.model_copy(update={"id": current.id})
            updated = parse_document(await self.api.put(f"{BASE}/{po_id}", json=to_payload(po)), PurchaseOrder)
        except ProcureDeskError as e:
            logger.warning(f"Failed to update purchase order {po_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Updated purchase order {updated.po_number}")

        if not submit:
            return CommandResult.success("Purchase order updated successfully", updated)

        result = await self.submit(po_id, current=updated)
        if not result.ok:
            result.message = f"Purchase order saved but not submitted: {result.message}"
            result.data = updated
        return result

    async def submit(self, po_id: int, current: Optional[PurchaseOrder] = None) -> CommandResult[PurchaseOrder]:
        try:
            po = current or await self.get(po_id)
            PURCHASE_ORDER_WORKFLOW.check(
                po.status,
                "submit",
                raised_by=po.raised_by,
                po_date=po.po_date,
                delivery_date=po.delivery_date,
                payment_terms=po.payment_terms,
            )
            submitted = parse_document(await self.api.post(f"{BASE}/{po_id}/submit"), PurchaseOrder)
        except ProcureDeskError as e:
            logger.warning(f"Failed to submit purchase order {po_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Submitted purchase order {submitted.po_number}")
        return CommandResult.success("Purchase order submitted for approval", submitted)

    async def approve(self, po_id: int, request: POApproveRequest) -> CommandResult[PurchaseOrder]:
        try:
            po = await self.get(po_id)
            PURCHASE_ORDER_WORKFLOW.check(
                po.status,
                "approve",
                approved_by=request.approved_by,
                approval_date=request.approval_date,
                po_date=po.po_date,
            )
            approved = parse_document(await self.api.post(
                f"{BASE}/{po_id}/approve",
                params={"approvedBy": request.approved_by, "approvalDate": request.approval_date.isoformat()},
            ), PurchaseOrder)
        except ProcureDeskError as e:
            logger.warning(f"Failed to approve purchase order {po_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Approved purchase order {approved.po_number} by {request.approved_by}")
        return CommandResult.success("Purchase order approved successfully", approved)

    async def _decide(self, po_id: int, action: str, reason: Optional[str], message: str) -> CommandResult[PurchaseOrder]:
        try:
            po = await self.get(po_id)
            PURCHASE_ORDER_WORKFLOW.check(po.status, action, reason=reason)
            result = parse_document(
                await self.api.post(f"{BASE}/{po_id}/{action}", params={"reason": reason.strip()}),
                PurchaseOrder,
            )
        except ProcureDeskError as e:
            logger.warning(f"Failed to {action} purchase order {po_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Purchase order {result.po_number} {action}: {reason}")
        return CommandResult.success(message, result)

    async def reject(self, po_id: int, reason: Optional[str]) -> CommandResult[PurchaseOrder]:
        return await self._decide(po_id, "reject", reason, "Purchase order rejected")

    async def cancel(self, po_id: int, reason: Optional[str]) -> CommandResult[PurchaseOrder]:
        """Cancel an approved PO. GRNs and invoices already raised against it are left as they are."""
        return await self._decide(po_id, "cancel", reason, "Purchase order cancelled")

    async def delete(self, po_id: int) -> CommandResult[None]:
        try:
            po = await self.get(po_id)
            PURCHASE_ORDER_WORKFLOW.check(po.status, "delete")
            await self.api.delete(f"{BASE}/{po_id}")
        except ProcureDeskError as e:
            logger.warning(f"Failed to delete purchase order {po_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Deleted purchase order {po.po_number}")
        return CommandResult.success("Purchase order deleted successfully")

    async def _advance(self, po: PurchaseOrder, action: str, outcome: Optional[POStatus]) -> CommandResult[PurchaseOrder]:
        try:
            status = PURCHASE_ORDER_WORKFLOW.next_status(po.status, action, outcome)
            po = po.model_copy(update={"status": POStatus(status)})
            updated = parse_document(await self.api.put(f"{BASE}/{po.id}", json=to_payload(po)), PurchaseOrder)
        except ProcureDeskError as e:
            logger.warning(f"Failed to {action} on purchase order {po.po_number}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Purchase order {updated.po_number} is now {updated.status.value}")
        return CommandResult.success(f"Purchase order {updated.status.value.replace('_', ' ').lower()}", updated)

    async def record_receipt(self, po_id: int) -> CommandResult[PurchaseOrder]:
        """Move an approved PO to PARTIALLY_DELIVERED or DELIVERED from its pending quantities"""
        try:
            po = await self.get(po_id)
        except ProcureDeskError as e:
            return CommandResult.failure(e)
        delivered = all(outstanding_quantity(item) <= 0 for item in po.items)
        outcome = POStatus.DELIVERED if delivered else POStatus.PARTIALLY_DELIVERED
        return await self._advance(po, "record_receipt", outcome)

    async def record_invoice(self, po_id: int) -> CommandResult[PurchaseOrder]:
        """Move a delivered PO to PARTIALLY_INVOICED or INVOICED from its invoiced quantities"""
        try:
            po = await self.get(po_id)
        except ProcureDeskError as e:
            return CommandResult.failure(e)
        invoiced = all((item.invoiced_quantity or 0) >= item.quantity for item in po.items)
        outcome = POStatus.INVOICED if invoiced else POStatus.PARTIALLY_INVOICED
        return await self._advance(po, "record_invoice", outcome)

    async def close(self, po_id: int) -> CommandResult[PurchaseOrder]:
        try:
            po = await self.get(po_id)
        except ProcureDeskError as e:
            return CommandResult.failure(e)
        return await self._advance(po, "close", None)

    async def export_pdf(self, po_id: int) -> Tuple[bytes, str, Optional[str]]:
        """
        Returns:
            (pdf bytes, download filename, storage key or None when not archived)
        """
        po = await self.get(po_id)
        content = await self.api.download(f"{BASE}/{po_id}/export/pdf")
        filename = f"{po.po_number.replace('/', '-')}.pdf"
        storage_key = self.storage.archive_export(content, "purchase-orders", filename) if self.storage is not None else None
        return content, filename, storage_key
