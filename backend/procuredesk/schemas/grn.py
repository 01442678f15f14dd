from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from procuredesk.schemas.common import CamelModel, Money, Quantity


class GRNStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"
    QUALITY_CHECK_PENDING = "QUALITY_CHECK_PENDING"
    QUALITY_CHECK_PASSED = "QUALITY_CHECK_PASSED"
    QUALITY_CHECK_FAILED = "QUALITY_CHECK_FAILED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class GRNType(str, Enum):
    STANDARD = "STANDARD"
    PARTIAL = "PARTIAL"
    RETURN = "RETURN"
    REPLACEMENT = "REPLACEMENT"
    SERVICE = "SERVICE"


class QualityStatus(str, Enum):
    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    PARTIALLY_PASSED = "PARTIALLY_PASSED"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class GRNItem(CamelModel):
    id: Optional[int] = None
    po_item_id: Optional[int] = None
    item_name: str
    item_code: Optional[str] = None
    item_description: Optional[str] = None
    po_quantity: Quantity = Decimal("0")
    received_quantity: Quantity = Decimal("0")
    accepted_quantity: Quantity = Decimal("0")
    rejected_quantity: Quantity = Decimal("0")
    pending_quantity: Quantity = Decimal("0")
    unit_of_measurement: Optional[str] = None
    unit_price: Money = Decimal("0")
    total_value: Money = Decimal("0")
    batch_number: Optional[str] = None
    serial_number: Optional[str] = None
    expiry_date: Optional[date] = None
    storage_location: Optional[str] = None
    bin_number: Optional[str] = None
    quality_status: QualityStatus = QualityStatus.PENDING
    quality_remarks: Optional[str] = None
    remarks: Optional[str] = None


class GRN(CamelModel):
    id: Optional[int] = None
    grn_number: Optional[str] = None
    po_id: int
    po_number: str
    po_date: Optional[date] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    supplier_code: Optional[str] = None
    received_date: Optional[date] = None
    received_by: Optional[str] = None
    warehouse_location: Optional[str] = None
    delivery_challan_number: Optional[str] = None
    delivery_challan_date: Optional[date] = None
    vehicle_number: Optional[str] = None
    transporter_name: Optional[str] = None
    status: GRNStatus = GRNStatus.DRAFT
    grn_type: GRNType = GRNType.STANDARD
    remarks: Optional[str] = None
    quality_check_status: Optional[str] = None
    quality_check_remarks: Optional[str] = None
    items: List[GRNItem] = []
    total_received_value: Money = Decimal("0")
    approved_by: Optional[str] = None
    approved_date: Optional[date] = None
    rejection_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_date: Optional[datetime] = None
    modified_by: Optional[str] = None
    modified_date: Optional[datetime] = None
    is_invoice_created: bool = False


class GRNItemInput(CamelModel):
    """A user-entered receipt line; quantities left out keep the PO defaults."""
    po_item_id: int
    received_quantity: Optional[Quantity] = None
    accepted_quantity: Optional[Quantity] = None
    rejected_quantity: Optional[Quantity] = None
    batch_number: Optional[str] = None
    serial_number: Optional[str] = None
    expiry_date: Optional[date] = None
    storage_location: Optional[str] = None
    bin_number: Optional[str] = None
    quality_status: Optional[QualityStatus] = None
    quality_remarks: Optional[str] = None
    remarks: Optional[str] = None


class GRNCreate(CamelModel):
    po_id: int
    received_date: Optional[date] = None
    received_by: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    warehouse_location: Optional[str] = None
    delivery_challan_number: Optional[str] = None
    delivery_challan_date: Optional[date] = None
    vehicle_number: Optional[str] = None
    transporter_name: Optional[str] = None
    grn_type: GRNType = GRNType.STANDARD
    remarks: Optional[str] = None
    quality_check_remarks: Optional[str] = None
    items: Optional[List[GRNItemInput]] = None
    approve: bool = False  # "Save & Approve"


class GRNLineEdit(CamelModel):
    """One keystroke-level edit of a receipt line quantity."""
    field: str
    value: Quantity


class GRNDecisionRequest(CamelModel):
    approved_by: Optional[str] = None
    comments: Optional[str] = None
    reason: Optional[str] = None


class QualityCheckLine(CamelModel):
    id: int
    quality_status: QualityStatus
    quality_remarks: Optional[str] = None


class QualityCheckRequest(CamelModel):
    remarks: Optional[str] = None
    items: List[QualityCheckLine] = []
