import httpx
from typing import Optional
from fastapi import Depends, Request
from fastapi.responses import JSONResponse, Response
from procuredesk.schemas.common import CommandResult
from procuredesk.services.api_client import ProcurementAPIClient
from procuredesk.services.document_bridge import DocumentBridge
from procuredesk.services.grn_service import GRNService
from procuredesk.services.invoice_service import InvoiceService
from procuredesk.services.master_data_service import MasterDataService
from procuredesk.services.purchase_order_service import PurchaseOrderService
from procuredesk.services.storage_service import StorageService, content_type_for, storage_service

bridge = DocumentBridge()


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared client opened in the application lifespan"""
    return request.app.state.http_client


def get_api_client(http: httpx.AsyncClient = Depends(get_http_client)) -> ProcurementAPIClient:
    return ProcurementAPIClient(http)


def get_storage() -> StorageService:
    return storage_service


def get_po_service(
    api: ProcurementAPIClient = Depends(get_api_client),
    storage: StorageService = Depends(get_storage),
) -> PurchaseOrderService:
    return PurchaseOrderService(api, storage, bridge)


def get_grn_service(
    api: ProcurementAPIClient = Depends(get_api_client),
    storage: StorageService = Depends(get_storage),
) -> GRNService:
    return GRNService(api, storage, bridge)


def get_invoice_service(
    api: ProcurementAPIClient = Depends(get_api_client),
    storage: StorageService = Depends(get_storage),
) -> InvoiceService:
    return InvoiceService(api, storage, bridge)


def get_master_data_service(
    api: ProcurementAPIClient = Depends(get_api_client),
    storage: StorageService = Depends(get_storage),
) -> MasterDataService:
    return MasterDataService(api, storage)


def present(result: CommandResult):
    """
    HTTP presentation of a command result: the result body is returned as-is,
    with its status code (201 for creations, the error's status for failures)
    """
    if result.ok and result.status_code == 200:
        return result
    return JSONResponse(
        status_code=result.status_code,
        content=result.model_dump(mode="json", by_alias=True),
    )


def file_response(content: bytes, filename: str, storage_key: Optional[str] = None) -> Response:
    """Binary export as an attachment; the archive key (if any) travels in X-Storage-Key"""
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    if storage_key:
        headers["X-Storage-Key"] = storage_key
    return Response(content=content, media_type=content_type_for(filename), headers=headers)
