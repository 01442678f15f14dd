from fastapi import APIRouter, Body, Depends, Query
from typing import Any, Dict, List, Optional
from datetime import date
from procuredesk.dependencies import file_response, get_grn_service, get_invoice_service, get_po_service, present
from procuredesk.schemas.common import AvailableActions, CommandResult, Page
from procuredesk.schemas.grn import GRN
from procuredesk.schemas.invoice import Invoice
from procuredesk.schemas.po import (
    POApproveRequest,
    POCreate,
    POReasonRequest,
    POStatus,
    PurchaseOrder,
    RFP,
)
from procuredesk.services.grn_service import GRNService
from procuredesk.services.invoice_service import InvoiceService
from procuredesk.services.purchase_order_service import PurchaseOrderService
from procuredesk.utils.pricing import recalculate_purchase_order

router = APIRouter(prefix="/api/purchase-orders", tags=["purchase-orders"])


@router.get("", response_model=Page[PurchaseOrder])
async def list_purchase_orders(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=1000),
    status: Optional[POStatus] = Query(None, description="Filter by status"),
    supplier_id: Optional[int] = Query(None, description="Filter by supplier ID"),
    search: Optional[str] = Query(None),
    service: PurchaseOrderService = Depends(get_po_service)
):
    """List purchase orders, one page at a time"""
    return await service.list(
        page,
        size,
        status=status.value if status else None,
        supplierId=supplier_id,
        search=search,
    )


@router.get("/generate-number")
async def generate_po_number(service: PurchaseOrderService = Depends(get_po_service)):
    return {"poNumber": await service.generate_number()}


@router.get("/approved-rfps", response_model=List[RFP])
async def list_approved_rfps(service: PurchaseOrderService = Depends(get_po_service)):
    """RFPs with a selected quotation, ready to become purchase orders"""
    return await service.approved_rfps()


@router.get("/search", response_model=List[PurchaseOrder])
async def search_purchase_orders(
    q: str = Query(..., min_length=1, description="PO number, supplier or item"),
    service: PurchaseOrderService = Depends(get_po_service)
):
    return await service.search(q)


@router.get("/date-range", response_model=List[PurchaseOrder])
async def purchase_orders_in_range(
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: PurchaseOrderService = Depends(get_po_service)
):
    return await service.date_range(start_date, end_date)


@router.get("/status/{status}", response_model=List[PurchaseOrder])
async def purchase_orders_by_status(status: POStatus, service: PurchaseOrderService = Depends(get_po_service)):
    return await service.by_status(status)


@router.get("/supplier/{supplier_id}", response_model=List[PurchaseOrder])
async def purchase_orders_by_supplier(supplier_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    return await service.by_supplier(supplier_id)


@router.get("/number/{po_number:path}", response_model=PurchaseOrder)
async def get_purchase_order_by_number(po_number: str, service: PurchaseOrderService = Depends(get_po_service)):
    """PO numbers contain slashes (PO/2024-2025/001), hence the path converter"""
    return await service.get_by_number(po_number)


@router.post("/recalculate", response_model=PurchaseOrder)
def recalculate(po: PurchaseOrder):
    """Recompute line and document totals of an unsaved PO (editor preview)"""
    return recalculate_purchase_order(po)


@router.get("/{po_id}", response_model=PurchaseOrder)
async def get_purchase_order(po_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    return await service.get(po_id)


@router.get("/{po_id}/actions", response_model=AvailableActions)
async def purchase_order_actions(po_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    return service.available_actions(await service.get(po_id))


@router.get("/{po_id}/grns", response_model=List[GRN])
async def purchase_order_grns(po_id: int, service: GRNService = Depends(get_grn_service)):
    return await service.by_purchase_order(po_id)


@router.get("/{po_id}/invoices", response_model=List[Invoice])
async def purchase_order_invoices(po_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return await service.by_purchase_order(po_id)


@router.post("", response_model=CommandResult[PurchaseOrder], status_code=201)
async def create_purchase_order(po_data: POCreate, service: PurchaseOrderService = Depends(get_po_service)):
    """Create a purchase order directly; the PO number is generated when left blank"""
    return present(await service.create(po_data))


@router.post("/from-rfp/{rfp_id}", response_model=CommandResult[PurchaseOrder], status_code=201)
async def create_purchase_order_from_rfp(
    rfp_id: int,
    overrides: Optional[Dict[str, Any]] = Body(None, description="Header fields changed on the prefilled form"),
    service: PurchaseOrderService = Depends(get_po_service)
):
    return present(await service.create_from_rfp(rfp_id, overrides))


@router.put("/{po_id}", response_model=CommandResult[PurchaseOrder])
async def update_purchase_order(
    po_id: int,
    po_data: POCreate,
    submit: bool = Query(False, description="Save & Submit"),
    service: PurchaseOrderService = Depends(get_po_service)
):
    return present(await service.update(po_id, po_data, submit=submit))


@router.post("/{po_id}/submit", response_model=CommandResult[PurchaseOrder])
async def submit_purchase_order(po_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    return present(await service.submit(po_id))


@router.post("/{po_id}/approve", response_model=CommandResult[PurchaseOrder])
async def approve_purchase_order(
    po_id: int,
    request: POApproveRequest,
    service: PurchaseOrderService = Depends(get_po_service)
):
    return present(await service.approve(po_id, request))


@router.post("/{po_id}/reject", response_model=CommandResult[PurchaseOrder])
async def reject_purchase_order(
    po_id: int,
    request: POReasonRequest,
    service: PurchaseOrderService = Depends(get_po_service)
):
    return present(await service.reject(po_id, request.reason))


@router.post("/{po_id}/cancel", response_model=CommandResult[PurchaseOrder])
async def cancel_purchase_order(
    po_id: int,
    request: POReasonRequest,
    service: PurchaseOrderService = Depends(get_po_service)
):
    return present(await service.cancel(po_id, request.reason))


@router.post("/{po_id}/record-receipt", response_model=CommandResult[PurchaseOrder])
async def record_purchase_order_receipt(po_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    return present(await service.record_receipt(po_id))


@router.post("/{po_id}/record-invoice", response_model=CommandResult[PurchaseOrder])
async def record_purchase_order_invoice(po_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    return present(await service.record_invoice(po_id))


@router.post("/{po_id}/close", response_model=CommandResult[PurchaseOrder])
async def close_purchase_order(po_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    return present(await service.close(po_id))


@router.delete("/{po_id}", response_model=CommandResult[None])
async def delete_purchase_order(po_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    """Only DRAFT purchase orders can be deleted"""
    return present(await service.delete(po_id))


@router.get("/{po_id}/export/pdf")
async def export_purchase_order_pdf(po_id: int, service: PurchaseOrderService = Depends(get_po_service)):
    return file_response(*await service.export_pdf(po_id))
