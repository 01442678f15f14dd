from pydantic import BaseModel
from typing import List, Optional
from decimal import Decimal
from procuredesk.schemas.invoice import Invoice


class LineItemMatch(BaseModel):
    """Represents the three-way matching result for a single invoice line"""
    invoice_line_no: int
    item_name: Optional[str] = None
    po_item_id: Optional[int] = None
    grn_item_id: Optional[int] = None
    matched: bool
    issues: List[str] = []
    invoice_quantity: Optional[Decimal] = None
    po_quantity: Optional[Decimal] = None
    grn_accepted_quantity: Optional[Decimal] = None
    invoice_unit_price: Optional[Decimal] = None
    po_unit_price: Optional[Decimal] = None


class MatchingIssue(BaseModel):
    """Represents a single matching issue"""
    type: str  # e.g., "missing_po", "missing_grn", "supplier_mismatch", "total_mismatch", "line_item_mismatch"
    severity: str  # "exception" or "needs_review"
    message: str
    details: Optional[dict] = None


class ThreeWayMatchResult(BaseModel):
    """Complete three-way matching result between PO, GRN and invoice"""
    status: str  # "matched", "mismatch"
    overall_match: bool
    issues: List[MatchingIssue] = []
    line_item_matches: List[LineItemMatch] = []
    supplier_match: bool = True
    currency_match: bool = True
    total_match: bool = True
    total_difference: Optional[Decimal] = None
    total_difference_percent: Optional[float] = None

    @property
    def remarks(self) -> str:
        if self.overall_match:
            return "PO, GRN and invoice agree"
        return "; ".join(issue.message for issue in self.issues)


class InvoiceMatchOutcome(BaseModel):
    """Invoice after the match was recorded, with the match details"""
    invoice: Invoice
    match: ThreeWayMatchResult
