from fastapi import APIRouter, Depends, File, Query, UploadFile
from typing import List, Optional
from datetime import date
from procuredesk.dependencies import file_response, get_invoice_service, present
from procuredesk.schemas.common import AvailableActions, CommandResult, Page
from procuredesk.schemas.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceDecisionRequest,
    InvoiceStatus,
    InvoiceType,
    PaymentRequest,
)
from procuredesk.schemas.matching import InvoiceMatchOutcome
from procuredesk.services.invoice_service import InvoiceService
from procuredesk.utils.pricing import recalculate_invoice

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


@router.get("", response_model=Page[Invoice])
async def list_invoices(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=1000),
    status: Optional[InvoiceStatus] = Query(None, description="Filter by status"),
    invoice_type: Optional[InvoiceType] = Query(None, alias="type"),
    supplier_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service: InvoiceService = Depends(get_invoice_service)
):
    """List invoices, one page at a time"""
    return await service.list(
        page,
        size,
        status=status.value if status else None,
        type=invoice_type.value if invoice_type else None,
        supplierId=supplier_id,
        search=search,
        startDate=start_date.isoformat() if start_date else None,
        endDate=end_date.isoformat() if end_date else None,
    )


@router.get("/purchase-order/{po_id}", response_model=List[Invoice])
async def invoices_for_purchase_order(po_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return await service.by_purchase_order(po_id)


@router.get("/grn/{grn_id}", response_model=List[Invoice])
async def invoices_for_grn(grn_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return await service.by_grn(grn_id)


@router.post("/recalculate", response_model=Invoice)
def recalculate(invoice: Invoice):
    """Recompute line amounts, totals and balance of an unsaved invoice (editor preview)"""
    return recalculate_invoice(invoice)


@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return await service.get(invoice_id)


@router.get("/{invoice_id}/actions", response_model=AvailableActions)
async def invoice_actions(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return service.available_actions(await service.get(invoice_id))


@router.post("", response_model=CommandResult[Invoice], status_code=201)
async def create_invoice(invoice_data: InvoiceCreate, service: InvoiceService = Depends(get_invoice_service)):
    """
    Create an invoice. With poId and/or grnId and no items the lines are
    derived from the GRN (accepted quantities) or else the PO.
    """
    return present(await service.create(invoice_data))


@router.put("/{invoice_id}", response_model=CommandResult[Invoice])
async def update_invoice(invoice_id: int, invoice: Invoice, service: InvoiceService = Depends(get_invoice_service)):
    return present(await service.update(invoice_id, invoice))


@router.post("/{invoice_id}/submit", response_model=CommandResult[Invoice])
async def submit_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return present(await service.submit(invoice_id))


@router.post("/{invoice_id}/request-approval", response_model=CommandResult[Invoice])
async def request_invoice_approval(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return present(await service.request_approval(invoice_id))


@router.post("/{invoice_id}/approve", response_model=CommandResult[Invoice])
async def approve_invoice(
    invoice_id: int,
    request: InvoiceDecisionRequest,
    service: InvoiceService = Depends(get_invoice_service)
):
    return present(await service.approve(invoice_id, request))


@router.post("/{invoice_id}/reject", response_model=CommandResult[Invoice])
async def reject_invoice(
    invoice_id: int,
    request: InvoiceDecisionRequest,
    service: InvoiceService = Depends(get_invoice_service)
):
    return present(await service.reject(invoice_id, request.reason))


@router.post("/{invoice_id}/hold", response_model=CommandResult[Invoice])
async def hold_invoice(
    invoice_id: int,
    request: InvoiceDecisionRequest,
    service: InvoiceService = Depends(get_invoice_service)
):
    return present(await service.hold(invoice_id, request.reason))


@router.post("/{invoice_id}/cancel", response_model=CommandResult[Invoice])
async def cancel_invoice(
    invoice_id: int,
    request: InvoiceDecisionRequest,
    service: InvoiceService = Depends(get_invoice_service)
):
    return present(await service.cancel(invoice_id, request.reason))


@router.post("/{invoice_id}/mark-overdue", response_model=CommandResult[Invoice])
async def mark_invoice_overdue(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return present(await service.mark_overdue(invoice_id))


@router.post("/{invoice_id}/three-way-match", response_model=CommandResult[InvoiceMatchOutcome])
async def three_way_match_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    """Match the invoice against its PO and GRN and record THREE_WAY_MATCHED / THREE_WAY_MISMATCH"""
    return present(await service.match(invoice_id))


@router.post("/{invoice_id}/payment", response_model=CommandResult[Invoice])
async def record_invoice_payment(
    invoice_id: int,
    payment: PaymentRequest,
    service: InvoiceService = Depends(get_invoice_service)
):
    return present(await service.record_payment(invoice_id, payment))


@router.post("/{invoice_id}/attachment", response_model=CommandResult[Invoice])
async def upload_invoice_attachment(
    invoice_id: int,
    file: UploadFile = File(...),
    service: InvoiceService = Depends(get_invoice_service)
):
    content = await file.read()
    return present(await service.upload_attachment(
        invoice_id,
        file.filename or "attachment",
        content,
        file.content_type or "application/octet-stream",
    ))


@router.get("/{invoice_id}/download")
async def download_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return file_response(*await service.download(invoice_id))
