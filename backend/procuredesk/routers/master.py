from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from procuredesk.dependencies import file_response, get_master_data_service
from procuredesk.schemas.common import Page
from procuredesk.schemas.master import MasterRecord, MasterResource
from procuredesk.services.master_data_service import MasterDataService

router = APIRouter(prefix="/api/master", tags=["master-data"])


@router.get("/{resource}/all", response_model=List[MasterRecord])
async def all_records(resource: MasterResource, service: MasterDataService = Depends(get_master_data_service)):
    """Every record of a master-data collection, for dropdowns"""
    return await service.all(resource)


@router.get("/{resource}/export")
async def export_records(
    resource: MasterResource,
    search: Optional[str] = Query(None),
    service: MasterDataService = Depends(get_master_data_service)
):
    return file_response(*await service.export(resource, search=search))


@router.get("/{resource}", response_model=Page[MasterRecord])
async def list_records(
    resource: MasterResource,
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=1000),
    search: Optional[str] = Query(None),
    service: MasterDataService = Depends(get_master_data_service)
):
    return await service.page(resource, page, size, search=search)


@router.get("/{resource}/{record_id}", response_model=MasterRecord)
async def get_record(
    resource: MasterResource,
    record_id: int,
    service: MasterDataService = Depends(get_master_data_service)
):
    return await service.get(resource, record_id)
