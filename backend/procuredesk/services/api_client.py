"""
Async client of the upstream procurement REST API.

Every failure leaves this module as UpstreamAPIError carrying the server's
message (or "An error occurred"), the HTTP status (500 when the server gave
none, 502 when it could not be reached) plus any error code and field errors
the server returned.
"""
import httpx
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar
from pydantic import BaseModel, ValidationError
from procuredesk.config import settings
from procuredesk.exceptions import UpstreamAPIError, GENERIC_ERROR_MESSAGE
from procuredesk.schemas.common import Page

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def to_payload(model: BaseModel) -> Dict[str, Any]:
    """camelCase JSON body for the upstream API"""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_document(payload: Any, model: Type[M]) -> M:
    """Validate an upstream body; one that does not fit the schema is an upstream failure"""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = [{"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]} for err in e.errors()]
        logger.error(f"Procurement API returned an invalid {model.__name__}: {errors}")
        raise UpstreamAPIError(f"Procurement API returned an invalid {model.__name__}", status_code=502, errors=errors)


def parse_list(payload: Any, model: Type[M]) -> List[M]:
    if isinstance(payload, dict):
        payload = payload.get("content", [])
    return [parse_document(row, model) for row in payload or []]


def parse_page(payload: Any, model: Type[M]) -> Page[M]:
    """Paged envelope; bare lists (some upstream endpoints) become a single page"""
    if isinstance(payload, list):
        content = parse_list(payload, model)
        return Page[model](
            content=content,
            total_elements=len(content),
            total_pages=1 if content else 0,
            size=len(content),
            number=0,
        )
    payload = payload or {}
    return Page[model](
        content=parse_list(payload.get("content"), model),
        total_elements=payload.get("totalElements", 0),
        total_pages=payload.get("totalPages", 0),
        size=payload.get("size", 0),
        number=payload.get("number", 0),
    )


def build_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Create the shared AsyncClient for the application lifetime."""
    headers = {"Accept": "application/json"}
    if settings.api_token:
        headers["Authorization"] = f"Bearer {settings.api_token}"
    return httpx.AsyncClient(
        base_url=settings.api_base_url.rstrip("/"),
        timeout=settings.api_timeout_seconds,
        headers=headers,
        transport=transport,
    )


def _error_from_response(response: httpx.Response) -> UpstreamAPIError:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    message, code, errors = None, None, None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        code = payload.get("code")
        errors = payload.get("errors")
        if errors is not None and not isinstance(errors, list):
            errors = [{"message": str(errors)}]

    return UpstreamAPIError(
        message=message or response.reason_phrase or GENERIC_ERROR_MESSAGE,
        status_code=response.status_code or 500,
        code=code,
        errors=errors,
    )


class ProcurementAPIClient:
    """Thin wrapper over httpx.AsyncClient that speaks the procurement API's JSON."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self.http.request(method, path, params=params, json=json, files=files)
        except httpx.TimeoutException as e:
            logger.error(f"Upstream timeout on {method} {path}: {str(e)}")
            raise UpstreamAPIError(f"Procurement API timed out after {settings.api_timeout_seconds:g}s", status_code=504)
        except httpx.HTTPError as e:
            logger.error(f"Upstream request failed on {method} {path}: {str(e)}")
            raise UpstreamAPIError(str(e) or GENERIC_ERROR_MESSAGE, status_code=502)

        if response.is_error:
            error = _error_from_response(response)
            logger.warning(f"Upstream {method} {path} returned {response.status_code}: {error.message}")
            raise error
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # Endpoints such as generate-number answer with a bare string
            return response.text

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._json(await self._send("GET", path, params=params))

    async def post(self, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._json(await self._send("POST", path, params=params, json=json))

    async def put(self, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._json(await self._send("PUT", path, params=params, json=json))

    async def delete(self, path: str) -> Any:
        return self._json(await self._send("DELETE", path))

    async def upload(self, path: str, filename: str, content: bytes, content_type: str) -> Any:
        files = {"file": (filename, content, content_type)}
        return self._json(await self._send("POST", path, files=files))

    async def download(self, path: str, params: Optional[Dict[str, Any]] = None) -> bytes:
        """Fetch a binary export (PDF / XLSX)."""
        response = await self._send("GET", path, params=params)
        return response.content
