"""
Goods receipt workflow: receive against an approved PO, edit receipt lines,
submit, approve ("Save & Approve"), reject, quality check, close and cancel.
"""
import logging
from typing import Any, List, Optional, Tuple
from procuredesk.exceptions import DocumentNotFound, DocumentValidationError, ProcureDeskError
from procuredesk.schemas.common import AvailableActions, CommandResult, Page
from procuredesk.schemas.grn import (
    GRN,
    GRNCreate,
    GRNDecisionRequest,
    GRNItem,
    GRNLineEdit,
    GRNStatus,
    QualityCheckRequest,
)
from procuredesk.schemas.po import PurchaseOrder
from procuredesk.services.api_client import ProcurementAPIClient, parse_document, parse_list, parse_page, to_payload
from procuredesk.services.document_bridge import DocumentBridge
from procuredesk.services.storage_service import StorageService
from procuredesk.utils.receipt import (
    edit_receipt_line,
    quality_outcome,
    recalculate_grn,
    receipt_completeness,
    validate_receipt_lines,
)
from procuredesk.utils.workflow import GRN_WORKFLOW

logger = logging.getLogger(__name__)

BASE = "/grn"


def preview_line_edit(item: GRNItem, edit: GRNLineEdit) -> GRNItem:
    """Apply one quantity edit to a receipt line without saving anything"""
    return edit_receipt_line(item, edit.field, edit.value)


class GRNService:
    """Goods receipt note operations against the procurement API"""

    def __init__(
        self,
        api: ProcurementAPIClient,
        storage: Optional[StorageService] = None,
        bridge: Optional[DocumentBridge] = None,
    ):
        self.api = api
        self.storage = storage
        self.bridge = bridge or DocumentBridge()

    async def get(self, grn_id: int) -> GRN:
        payload = await self.api.get(f"{BASE}/{grn_id}")
        if not payload:
            raise DocumentNotFound("GRN", grn_id)
        return parse_document(payload, GRN)

    async def list(self, page: int = 0, size: int = 20, **filters: Any) -> Page[GRN]:
        payload = await self.api.get(BASE, params={"page": page, "size": size, **filters})
        return parse_page(payload, GRN)

    async def by_purchase_order(self, po_id: int) -> List[GRN]:
        return parse_list(await self.api.get(f"{BASE}/purchase-order/{po_id}"), GRN)

    def available_actions(self, grn: GRN) -> AvailableActions:
        actions = GRN_WORKFLOW.available_actions(grn.status)
        if grn.status in (GRNStatus.APPROVED, GRNStatus.FULLY_RECEIVED, GRNStatus.QUALITY_CHECK_PASSED) \
                and not grn.is_invoice_created:
            actions.append("create_invoice")
        actions.append("download")
        return AvailableActions(document_type="GRN", document_id=grn.id, status=grn.status.value, actions=actions)

    async def _save(self, grn: GRN) -> GRN:
        return parse_document(await self.api.put(f"{BASE}/{grn.id}", json=to_payload(grn)), GRN)

    async def create_from_po(self, data: GRNCreate) -> CommandResult[GRN]:
        """
        Receive goods against an approved PO. With data.approve set this is
        "Save & Approve": the GRN is created and then approved in one call.
        """
        try:
            payload = await self.api.get(f"/purchaseorder/{data.po_id}")
            if not payload:
                raise DocumentNotFound("Purchase order", data.po_id)
            po = parse_document(payload, PurchaseOrder)
            grn = self.bridge.grn_from_po(po, data)
            if data.approve:
                GRN_WORKFLOW.check(grn.status, "approve", items=grn.items)
            created = parse_document(await self.api.post(BASE, json=to_payload(grn)), GRN)
        except ProcureDeskError as e:
            logger.warning(f"Failed to create GRN for PO {data.po_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Created GRN {created.grn_number} (ID {created.id}) against PO {created.po_number}")

        if not data.approve:
            return CommandResult.success("GRN created successfully", created, status_code=201)

        result = await self.approve(created.id, GRNDecisionRequest(approved_by=data.received_by), current=created)
        if not result.ok:
            result.message = f"GRN saved but not approved: {result.message}"
            result.data = created
            return result
        result.message = "GRN created and approved successfully"
        result.status_code = 201
        return result

    async def update(self, grn_id: int, grn: GRN) -> CommandResult[GRN]:
        """Save edited receipt lines and header fields of a DRAFT GRN"""
        try:
            current = await self.get(grn_id)
            GRN_WORKFLOW.check(current.status, "edit")
            grn = recalculate_grn(grn.model_copy(update={
                "id": current.id,
                "status": current.status,
                "po_id": current.po_id,
                "po_number": current.po_number,
            }))
            validate_receipt_lines(grn.items)
            updated = await self._save(grn)
        except ProcureDeskError as e:
            logger.warning(f"Failed to update GRN {grn_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Updated GRN {updated.grn_number}")
        return CommandResult.success("GRN updated successfully", updated)

    async def edit_line(self, grn_id: int, item_id: int, edit: GRNLineEdit) -> CommandResult[GRN]:
        """Apply one quantity edit to a saved DRAFT GRN line and store the result"""
        try:
            grn = await self.get(grn_id)
            GRN_WORKFLOW.check(grn.status, "edit")
            if not any(item.id == item_id for item in grn.items):
                raise DocumentValidationError(f"GRN {grn.grn_number} has no item {item_id}")
            items = [edit_receipt_line(item, edit.field, edit.value) if item.id == item_id else item for item in grn.items]
            validate_receipt_lines(items)
            updated = await self._save(recalculate_grn(grn.model_copy(update={"items": items})))
        except ProcureDeskError as e:
            logger.warning(f"Failed to edit line {item_id} of GRN {grn_id}: {e.message}")
            return CommandResult.failure(e)
        return CommandResult.success("GRN line updated", updated)

    async def _advance(
        self,
        grn: GRN,
        action: str,
        outcome: Optional[GRNStatus] = None,
        message: Optional[str] = None,
        reason: Optional[str] = None,
        **changes: Any,
    ) -> CommandResult[GRN]:
        try:
            status = GRN_WORKFLOW.next_status(grn.status, action, outcome, items=grn.items, reason=reason)
            updated = await self._save(grn.model_copy(update={"status": GRNStatus(status), **changes}))
        except ProcureDeskError as e:
            logger.warning(f"Failed to {action} GRN {grn.grn_number}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"GRN {updated.grn_number} is now {updated.status.value}")
        return CommandResult.success(message or f"GRN {updated.status.value.replace('_', ' ').lower()}", updated)

    async def submit(self, grn_id: int) -> CommandResult[GRN]:
        try:
            grn = await self.get(grn_id)
            GRN_WORKFLOW.check(grn.status, "submit", items=grn.items)
            validate_receipt_lines(grn.items)
        except ProcureDeskError as e:
            logger.warning(f"Failed to submit GRN {grn_id}: {e.message}")
            return CommandResult.failure(e)
        return await self._advance(grn, "submit", message="GRN submitted for approval")

    async def approve(
        self,
        grn_id: int,
        request: GRNDecisionRequest,
        current: Optional[GRN] = None,
    ) -> CommandResult[GRN]:
        try:
            grn = current or await self.get(grn_id)
            GRN_WORKFLOW.check(grn.status, "approve", items=grn.items)
            approved = parse_document(await self.api.put(
                f"{BASE}/{grn_id}/approve",
                json={"comments": request.comments, "approvedBy": request.approved_by},
            ), GRN)
        except ProcureDeskError as e:
            logger.warning(f"Failed to approve GRN {grn_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Approved GRN {approved.grn_number}")
        return CommandResult.success("GRN approved successfully", approved)

    async def reject(self, grn_id: int, reason: Optional[str]) -> CommandResult[GRN]:
        try:
            grn = await self.get(grn_id)
            GRN_WORKFLOW.check(grn.status, "reject", reason=reason)
            rejected = parse_document(await self.api.put(f"{BASE}/{grn_id}/reject", json={"reason": reason.strip()}), GRN)
        except ProcureDeskError as e:
            logger.warning(f"Failed to reject GRN {grn_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Rejected GRN {rejected.grn_number}: {reason}")
        return CommandResult.success("GRN rejected", rejected)

    async def cancel(self, grn_id: int, reason: Optional[str]) -> CommandResult[GRN]:
        try:
            grn = await self.get(grn_id)
        except ProcureDeskError as e:
            return CommandResult.failure(e)
        return await self._advance(grn, "cancel", message="GRN cancelled", reason=reason, remarks=reason)

    async def record_receipt(self, grn_id: int) -> CommandResult[GRN]:
        """Mark an approved GRN fully or partially received from its pending quantities"""
        try:
            grn = await self.get(grn_id)
        except ProcureDeskError as e:
            return CommandResult.failure(e)
        return await self._advance(grn, "record_receipt", receipt_completeness(grn.items))

    async def start_quality_check(self, grn_id: int) -> CommandResult[GRN]:
        try:
            grn = await self.get(grn_id)
        except ProcureDeskError as e:
            return CommandResult.failure(e)
        return await self._advance(grn, "start_quality_check", message="Quality check started")

    async def quality_check(self, grn_id: int, request: QualityCheckRequest) -> CommandResult[GRN]:
        """
        Record per-line inspection results and roll them up to
        QUALITY_CHECK_PASSED or QUALITY_CHECK_FAILED.

        A received GRN that has not been put into QUALITY_CHECK_PENDING yet is
        moved there first.
        """
        try:
            grn = await self.get(grn_id)
            status = grn.status
            if GRN_WORKFLOW.can(status, "start_quality_check"):
                status = GRN_WORKFLOW.next_status(status, "start_quality_check")
            GRN_WORKFLOW.check(status, "complete_quality_check")

            results = {line.id: line for line in request.items}
            unknown = set(results) - {item.id for item in grn.items}
            if unknown:
                raise DocumentValidationError(
                    f"GRN {grn.grn_number} has no item(s) {', '.join(str(i) for i in sorted(unknown))}"
                )
            items = [
                item.model_copy(update={
                    "quality_status": results[item.id].quality_status,
                    "quality_remarks": results[item.id].quality_remarks,
                }) if item.id in results else item
                for item in grn.items
            ]
            outcome = quality_outcome(items)
            status = GRN_WORKFLOW.next_status(status, "complete_quality_check", outcome)
            checked = parse_document(await self.api.put(f"{BASE}/{grn_id}/quality-check", json={
                "status": status,
                "remarks": request.remarks,
                "items": [
                    {"id": item.id, "qualityStatus": item.quality_status.value, "qualityRemarks": item.quality_remarks}
                    for item in items
                ],
            }), GRN)
        except ProcureDeskError as e:
            logger.warning(f"Failed to record quality check for GRN {grn_id}: {e.message}")
            return CommandResult.failure(e)
        logger.info(f"Quality check for GRN {checked.grn_number}: {status}")
        return CommandResult.success(f"Quality check {'passed' if status == GRNStatus.QUALITY_CHECK_PASSED.value else 'failed'}", checked)

    async def close(self, grn_id: int) -> CommandResult[GRN]:
        try:
            grn = await self.get(grn_id)
        except ProcureDeskError as e:
            return CommandResult.failure(e)
        return await self._advance(grn, "close", message="GRN closed")

    async def download(self, grn_id: int) -> Tuple[bytes, str, Optional[str]]:
        grn = await self.get(grn_id)
        content = await self.api.download(f"{BASE}/{grn_id}/download")
        filename = f"{(grn.grn_number or f'GRN-{grn_id}').replace('/', '-')}.pdf"
        storage_key = self.storage.archive_export(content, "grns", filename) if self.storage is not None else None
        return content, filename, storage_key
