from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import List, Optional
from procuredesk.dependencies import file_response, get_grn_service, get_invoice_service, present
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
from procuredesk.schemas.invoice import Invoice
from procuredesk.services.grn_service import GRNService, preview_line_edit
from procuredesk.services.invoice_service import InvoiceService

router = APIRouter(prefix="/api/grns", tags=["grns"])


class LinePreviewRequest(BaseModel):
    item: GRNItem
    edit: GRNLineEdit


@router.get("", response_model=Page[GRN])
async def list_grns(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=1000),
    status: Optional[GRNStatus] = Query(None, description="Filter by status"),
    supplier_id: Optional[int] = Query(None),
    po_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    service: GRNService = Depends(get_grn_service)
):
    """List goods receipt notes, one page at a time"""
    return await service.list(
        page,
        size,
        status=status.value if status else None,
        supplierId=supplier_id,
        poId=po_id,
        search=search,
    )


@router.get("/purchase-order/{po_id}", response_model=List[GRN])
async def grns_for_purchase_order(po_id: int, service: GRNService = Depends(get_grn_service)):
    return await service.by_purchase_order(po_id)


@router.post("/lines/preview", response_model=GRNItem)
def preview_receipt_line(request: LinePreviewRequest):
    """
    Apply one quantity edit to an unsaved receipt line:
    received -> accepted = received, rejected = 0; accepted/rejected -> the other one follows
    """
    return preview_line_edit(request.item, request.edit)


@router.get("/{grn_id}", response_model=GRN)
async def get_grn(grn_id: int, service: GRNService = Depends(get_grn_service)):
    return await service.get(grn_id)


@router.get("/{grn_id}/actions", response_model=AvailableActions)
async def grn_actions(grn_id: int, service: GRNService = Depends(get_grn_service)):
    return service.available_actions(await service.get(grn_id))


@router.get("/{grn_id}/invoices", response_model=List[Invoice])
async def grn_invoices(grn_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return await service.by_grn(grn_id)


@router.post("", response_model=CommandResult[GRN], status_code=201)
async def create_grn(grn_data: GRNCreate, service: GRNService = Depends(get_grn_service)):
    """Receive goods against an APPROVED purchase order (approve=true for Save & Approve)"""
    return present(await service.create_from_po(grn_data))


@router.put("/{grn_id}", response_model=CommandResult[GRN])
async def update_grn(grn_id: int, grn: GRN, service: GRNService = Depends(get_grn_service)):
    return present(await service.update(grn_id, grn))


@router.patch("/{grn_id}/items/{item_id}", response_model=CommandResult[GRN])
async def edit_grn_line(
    grn_id: int,
    item_id: int,
    edit: GRNLineEdit,
    service: GRNService = Depends(get_grn_service)
):
    return present(await service.edit_line(grn_id, item_id, edit))


@router.post("/{grn_id}/submit", response_model=CommandResult[GRN])
async def submit_grn(grn_id: int, service: GRNService = Depends(get_grn_service)):
    return present(await service.submit(grn_id))


@router.post("/{grn_id}/approve", response_model=CommandResult[GRN])
async def approve_grn(
    grn_id: int,
    request: GRNDecisionRequest,
    service: GRNService = Depends(get_grn_service)
):
    return present(await service.approve(grn_id, request))


@router.post("/{grn_id}/reject", response_model=CommandResult[GRN])
async def reject_grn(
    grn_id: int,
    request: GRNDecisionRequest,
    service: GRNService = Depends(get_grn_service)
):
    return present(await service.reject(grn_id, request.reason))


@router.post("/{grn_id}/cancel", response_model=CommandResult[GRN])
async def cancel_grn(
    grn_id: int,
    request: GRNDecisionRequest,
    service: GRNService = Depends(get_grn_service)
):
    return present(await service.cancel(grn_id, request.reason))


@router.post("/{grn_id}/record-receipt", response_model=CommandResult[GRN])
async def record_grn_receipt(grn_id: int, service: GRNService = Depends(get_grn_service)):
    return present(await service.record_receipt(grn_id))


@router.post("/{grn_id}/quality-check/start", response_model=CommandResult[GRN])
async def start_quality_check(grn_id: int, service: GRNService = Depends(get_grn_service)):
    return present(await service.start_quality_check(grn_id))


@router.put("/{grn_id}/quality-check", response_model=CommandResult[GRN])
async def record_quality_check(
    grn_id: int,
    request: QualityCheckRequest,
    service: GRNService = Depends(get_grn_service)
):
    """Record per-line inspection results; the GRN passes only if no line failed"""
    return present(await service.quality_check(grn_id, request))


@router.post("/{grn_id}/close", response_model=CommandResult[GRN])
async def close_grn(grn_id: int, service: GRNService = Depends(get_grn_service)):
    return present(await service.close(grn_id))


@router.get("/{grn_id}/download")
async def download_grn(grn_id: int, service: GRNService = Depends(get_grn_service)):
    return file_response(*await service.download(grn_id))
