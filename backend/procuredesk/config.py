from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Upstream procurement API
    api_base_url: str = "http://localhost:8080/api"
    api_timeout_seconds: float = 30.0
    api_token: Optional[str] = None  # Bearer token forwarded to the upstream API

    # Money
    money_decimal_places: int = 2

    # Default line taxes (intra-state GST split)
    default_tax1_type: str = "CGST"
    default_tax1_rate: float = 9.0
    default_tax2_type: str = "SGST"
    default_tax2_rate: float = 9.0

    # Invoice due date defaults, keyed off the PO payment terms
    short_term_due_days: int = 30
    long_term_due_days: int = 45

    # Three-way matching
    matching_quantity_tolerance: float = 0.01  # Absolute quantity difference
    matching_price_tolerance: float = 0.01  # Absolute unit price difference
    matching_total_tolerance: float = 0.01  # 1% tolerance for total amount matching

    # Document numbering
    financial_year_start_month: int = 4  # April-March financial year
    po_number_prefix: str = "PO"
    po_number_padding: int = 3

    # Storage Configuration (S3-compatible) for exported documents
    storage_endpoint_url: Optional[str] = None
    storage_access_key_id: Optional[str] = None
    storage_secret_access_key: Optional[str] = None
    storage_bucket_name: str = "procuredesk-exports"
    storage_region: str = "us-east-1"
    storage_local_dir: str = "local_storage/exports"
    archive_exports: bool = True

    # CORS Configuration
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "PROCUREDESK_"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env file


settings = Settings()
