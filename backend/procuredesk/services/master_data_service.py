import logging
from typing import Any, List, Optional, Tuple
from procuredesk.exceptions import DocumentNotFound
from procuredesk.schemas.common import Page
from procuredesk.schemas.master import MasterRecord, MasterResource
from procuredesk.services.api_client import ProcurementAPIClient, parse_document, parse_list, parse_page
from procuredesk.services.storage_service import StorageService

logger = logging.getLogger(__name__)


class MasterDataService:
    """Read-only pass-through to the /master collections (countries, states, cities, floors, taxes)"""

    def __init__(self, api: ProcurementAPIClient, storage: Optional[StorageService] = None):
        self.api = api
        self.storage = storage

    async def all(self, resource: MasterResource) -> List[MasterRecord]:
        return parse_list(await self.api.get(f"/master/{resource.value}/all"), MasterRecord)

    async def page(self, resource: MasterResource, page: int = 0, size: int = 20, **filters: Any) -> Page[MasterRecord]:
        payload = await self.api.get(f"/master/{resource.value}", params={"page": page, "size": size, **filters})
        return parse_page(payload, MasterRecord)

    async def get(self, resource: MasterResource, record_id: int) -> MasterRecord:
        payload = await self.api.get(f"/master/{resource.value}/{record_id}")
        if not payload:
            raise DocumentNotFound(resource.label, record_id)
        return parse_document(payload, MasterRecord)

    async def export(self, resource: MasterResource, **filters: Any) -> Tuple[bytes, str, Optional[str]]:
        """Excel export of a master-data collection"""
        content = await self.api.download(f"/master/{resource.value}/export", params=filters)
        filename = f"{resource.value}.xlsx"
        storage_key = self.storage.archive_export(content, f"master/{resource.value}", filename) if self.storage is not None else None
        logger.info(f"Exported master data {resource.value} ({len(content)} bytes)")
        return content, filename, storage_key
