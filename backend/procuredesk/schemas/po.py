from pydantic import model_validator
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from procuredesk.schemas.common import CamelModel, Money, Quantity, Rate


class POStatus(str, Enum):
    DRAFT = "DRAFT"
    CREATED = "CREATED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED"
    DELIVERED = "DELIVERED"
    PARTIALLY_INVOICED = "PARTIALLY_INVOICED"
    INVOICED = "INVOICED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class POType(str, Enum):
    DIRECT = "DIRECT"
    INDIRECT = "INDIRECT"
    SERVICE = "SERVICE"
    CAPEX = "CAPEX"
    OPEX = "OPEX"


class PurchaseOrderItem(CamelModel):
    id: Optional[int] = None
    item_name: str
    item_code: Optional[str] = None
    item_description: Optional[str] = None
    remarks: Optional[str] = None
    delivery_date: Optional[date] = None
    quantity: Quantity = Decimal("0")
    unit_of_measurement: Optional[str] = None
    unit_price: Money = Decimal("0")
    tax1_type: Optional[str] = None
    tax1_rate: Rate = Decimal("0")
    tax1_amount: Money = Decimal("0")
    tax2_type: Optional[str] = None
    tax2_rate: Rate = Decimal("0")
    tax2_amount: Money = Decimal("0")
    total_amount: Money = Decimal("0")
    grand_total: Money = Decimal("0")
    category: Optional[str] = None
    sub_category: Optional[str] = None
    specifications: Optional[str] = None
    received_quantity: Optional[Quantity] = None
    pending_quantity: Optional[Quantity] = None
    invoiced_quantity: Optional[Quantity] = None

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_tax_values(cls, data):
        """Older screens send tax1Value/tax2Value for the same amounts."""
        if isinstance(data, dict):
            data = dict(data)
            for n in ("1", "2"):
                legacy = data.pop(f"tax{n}Value", None)
                if legacy is None:
                    legacy = data.pop(f"tax{n}_value", None)
                if legacy is not None and data.get(f"tax{n}Amount") is None and data.get(f"tax{n}_amount") is None:
                    data[f"tax{n}Amount"] = legacy
        return data


class PurchaseOrder(CamelModel):
    id: Optional[int] = None
    po_number: str
    quotation_number: Optional[str] = None
    rfp_number: Optional[str] = None
    pr_number: Optional[str] = None
    po_date: Optional[date] = None
    delivery_date: Optional[date] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    supplier_code: Optional[str] = None
    raised_by: Optional[str] = None
    department: Optional[str] = None
    approval_group: Optional[str] = None
    payment_terms: Optional[str] = None
    terms_conditions: Optional[str] = None
    ship_to_address: Optional[str] = None
    bill_to_address: Optional[str] = None
    description_tc: Optional[str] = None
    remarks: Optional[str] = None
    status: POStatus = POStatus.DRAFT
    po_type: Optional[POType] = None
    sub_total: Money = Decimal("0")
    tax_amount: Money = Decimal("0")
    discount_amount: Money = Decimal("0")
    freight_charges: Money = Decimal("0")
    other_charges: Money = Decimal("0")
    grand_total: Money = Decimal("0")
    currency: str = "INR"
    items: List[PurchaseOrderItem] = []
    approved_by: Optional[str] = None
    approved_date: Optional[date] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_date: Optional[datetime] = None
    modified_by: Optional[str] = None
    modified_date: Optional[datetime] = None
    is_grn_created: bool = False
    is_invoice_created: bool = False


class POCreate(CamelModel):
    """Body for creating or editing a PO; amounts on items are ignored and recomputed."""
    po_number: Optional[str] = None
    quotation_number: Optional[str] = None
    rfp_number: Optional[str] = None
    pr_number: Optional[str] = None
    po_date: Optional[date] = None
    delivery_date: Optional[date] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    supplier_code: Optional[str] = None
    raised_by: Optional[str] = None
    department: Optional[str] = None
    approval_group: Optional[str] = None
    payment_terms: Optional[str] = None
    terms_conditions: Optional[str] = None
    ship_to_address: Optional[str] = None
    bill_to_address: Optional[str] = None
    remarks: Optional[str] = None
    po_type: Optional[POType] = None
    discount_amount: Money = Decimal("0")
    freight_charges: Money = Decimal("0")
    other_charges: Money = Decimal("0")
    currency: str = "INR"
    items: List[PurchaseOrderItem] = []


class POApproveRequest(CamelModel):
    approved_by: Optional[str] = None
    approval_date: Optional[date] = None


class POReasonRequest(CamelModel):
    """Body for reject and cancel; the reason is checked by the workflow guard."""
    reason: Optional[str] = None


class RFPQuotationItem(CamelModel):
    item_name: str = ""
    item_code: Optional[str] = None
    description: Optional[str] = None
    quantity: Quantity = Decimal("0")
    unit_of_measurement: Optional[str] = None
    unit_price: Money = Decimal("0")
    remarks: Optional[str] = None


class RFPQuotation(CamelModel):
    quotation_number: Optional[str] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    payment_terms: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    is_selected: bool = False
    items: List[RFPQuotationItem] = []


class RFP(CamelModel):
    id: Optional[int] = None
    rfp_number: Optional[str] = None
    delivery_date: Optional[date] = None
    department: Optional[str] = None
    quotations: List[RFPQuotation] = []
