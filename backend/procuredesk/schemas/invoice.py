from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from procuredesk.schemas.common import CamelModel, Money, Quantity, Rate


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    THREE_WAY_MATCHED = "THREE_WAY_MATCHED"
    THREE_WAY_MISMATCH = "THREE_WAY_MISMATCH"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"


class InvoiceType(str, Enum):
    STANDARD = "STANDARD"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    ADVANCE = "ADVANCE"
    PARTIAL = "PARTIAL"
    FINAL = "FINAL"
    SERVICE = "SERVICE"
    PROFORMA = "PROFORMA"


class InvoiceItem(CamelModel):
    id: Optional[int] = None
    po_item_id: Optional[int] = None
    grn_item_id: Optional[int] = None
    item_name: str
    item_code: Optional[str] = None
    item_description: Optional[str] = None
    hsn_sac_code: Optional[str] = None
    po_quantity: Optional[Quantity] = None
    grn_quantity: Optional[Quantity] = None
    invoice_quantity: Quantity = Decimal("0")
    unit_of_measurement: Optional[str] = None
    unit_price: Money = Decimal("0")
    base_amount: Money = Decimal("0")
    discount_percentage: Rate = Decimal("0")
    discount_amount: Money = Decimal("0")
    taxable_amount: Money = Decimal("0")
    cgst_rate: Rate = Decimal("0")
    cgst_amount: Money = Decimal("0")
    sgst_rate: Rate = Decimal("0")
    sgst_amount: Money = Decimal("0")
    igst_rate: Rate = Decimal("0")
    igst_amount: Money = Decimal("0")
    other_tax_rate: Rate = Decimal("0")
    other_tax_amount: Money = Decimal("0")
    total_tax_amount: Money = Decimal("0")
    total_amount: Money = Decimal("0")
    gl_account_code: Optional[str] = None
    cost_center: Optional[str] = None
    project_code: Optional[str] = None
    remarks: Optional[str] = None


class Invoice(CamelModel):
    id: Optional[int] = None
    invoice_number: str
    invoice_date: Optional[date] = None
    po_id: Optional[int] = None
    po_number: Optional[str] = None
    grn_id: Optional[int] = None
    grn_number: Optional[str] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    supplier_code: Optional[str] = None
    supplier_invoice_number: Optional[str] = None
    supplier_invoice_date: Optional[date] = None
    invoice_type: InvoiceType = InvoiceType.STANDARD
    status: InvoiceStatus = InvoiceStatus.DRAFT
    payment_terms: Optional[str] = None
    due_date: Optional[date] = None
    currency: str = "INR"
    exchange_rate: Rate = Decimal("1")
    sub_total: Money = Decimal("0")
    tax_amount: Money = Decimal("0")
    discount_amount: Money = Decimal("0")
    freight_charges: Money = Decimal("0")
    other_charges: Money = Decimal("0")
    grand_total: Money = Decimal("0")
    paid_amount: Money = Decimal("0")
    balance_amount: Money = Decimal("0")
    items: List[InvoiceItem] = []
    bill_to_address: Optional[str] = None
    ship_to_address: Optional[str] = None
    remarks: Optional[str] = None
    attachment_path: Optional[str] = None
    three_way_match_status: Optional[str] = None
    three_way_match_remarks: Optional[str] = None
    approved_by: Optional[str] = None
    approved_date: Optional[date] = None
    rejection_reason: Optional[str] = None
    hold_reason: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_date: Optional[date] = None
    created_by: Optional[str] = None
    created_date: Optional[datetime] = None
    modified_by: Optional[str] = None
    modified_date: Optional[datetime] = None


class InvoiceCreate(CamelModel):
    """
    Body for creating an invoice. When items are omitted they are derived from the
    linked PO and/or GRN; GRN lines win when both are linked.
    """
    invoice_number: str
    invoice_date: Optional[date] = None
    po_id: Optional[int] = None
    grn_id: Optional[int] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    supplier_invoice_number: Optional[str] = None
    supplier_invoice_date: Optional[date] = None
    invoice_type: InvoiceType = InvoiceType.STANDARD
    payment_terms: Optional[str] = None
    due_date: Optional[date] = None
    currency: str = "INR"
    exchange_rate: Rate = Decimal("1")
    freight_charges: Money = Decimal("0")
    other_charges: Money = Decimal("0")
    remarks: Optional[str] = None
    items: Optional[List[InvoiceItem]] = None
    submit: bool = False


class InvoiceDecisionRequest(CamelModel):
    approved_by: Optional[str] = None
    comments: Optional[str] = None
    reason: Optional[str] = None


class PaymentRequest(CamelModel):
    payment_amount: Money
    payment_date: Optional[date] = None
    payment_mode: Optional[str] = None
    payment_reference: Optional[str] = None
    bank_name: Optional[str] = None
    remarks: Optional[str] = None
