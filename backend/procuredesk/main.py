from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from procuredesk.routers import purchase_orders, grns, invoices, master
from procuredesk.config import settings
from procuredesk.dependencies import get_storage
from procuredesk.exceptions import ProcureDeskError
from procuredesk.services.api_client import build_http_client
from procuredesk.services.storage_service import StorageService, content_type_for
import logging
import sys
import os

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)

# Log startup information
logger.info("="*60)
logger.info("Starting ProcureDesk API")
logger.info("="*60)
logger.info(f"Procurement API: {settings.api_base_url} (timeout {settings.api_timeout_seconds:g}s)")
logger.info(f"Bearer token configured: {bool(settings.api_token)}")
logger.info(f"S3 export storage configured: {bool(settings.storage_access_key_id and settings.storage_secret_access_key)}")
logger.info("="*60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One pooled client for every upstream call made during the app's lifetime
    app.state.http_client = build_http_client()
    try:
        yield
    finally:
        await app.state.http_client.aclose()


app = FastAPI(
    title="ProcureDesk API",
    description="Purchase order, goods receipt and invoice workflows over the procurement API",
    version="1.0.0",
    lifespan=lifespan
)


def parse_cors_origins(origins_str: str) -> list:
    """Parse CORS origins string into a list"""
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


cors_origins = parse_cors_origins(settings.cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Storage-Key"],
)

# Include routers
app.include_router(purchase_orders.router)
app.include_router(grns.router)
app.include_router(invoices.router)
app.include_router(master.router)


@app.get("/")
def root():
    return {"message": "ProcureDesk API", "version": "1.0.0"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/api/storage/{file_path:path}")
def serve_storage_file(file_path: str, storage: StorageService = Depends(get_storage)):
    """
    Serve an archived export from local storage or S3

    Args:
        file_path: Storage key (e.g., "purchase-orders/20250115_101500_PO-2024-2025-001.pdf")
    """
    try:
        file_content = storage.download(file_path)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")

    return Response(
        content=file_content,
        media_type=content_type_for(file_path),
        headers={
            "Content-Disposition": f'inline; filename="{os.path.basename(file_path)}"'
        }
    )


@app.exception_handler(ProcureDeskError)
async def procuredesk_exception_handler(request: Request, exc: ProcureDeskError):
    """Domain errors raised by reads (not found, upstream failures, bad filters)"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind, "errors": getattr(exc, "errors", [])},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler so clients always get a JSON body"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error: {str(exc)}"},
    )
