from typing import List, Tuple, Optional, Dict
from decimal import Decimal
import difflib
from procuredesk.schemas.po import PurchaseOrder, PurchaseOrderItem
from procuredesk.schemas.grn import GRN, GRNItem
from procuredesk.schemas.invoice import Invoice, InvoiceItem
from procuredesk.schemas.matching import MatchingIssue, LineItemMatch
from procuredesk.config import settings

# Fuzzy matching threshold for item names
FUZZY_THRESHOLD = 0.8


def check_po_linked(po: Optional[PurchaseOrder], invoice: Invoice) -> Tuple[bool, Optional[MatchingIssue]]:
    """
    Check the invoice references a PO that exists

    Returns:
        (linked, issue) tuple
    """
    if po is None:
        return False, MatchingIssue(
            type="missing_po",
            severity="exception",
            message=f"Purchase order {invoice.po_number or invoice.po_id} not found" if (invoice.po_number or invoice.po_id) else "Invoice does not reference a purchase order",
            details={"po_id": invoice.po_id, "po_number": invoice.po_number}
        )
    return True, None


def check_grn_linked(grn: Optional[GRN], invoice: Invoice) -> Tuple[bool, Optional[MatchingIssue]]:
    """
    Check the invoice references a goods receipt; a three-way match needs one

    Returns:
        (linked, issue) tuple
    """
    if grn is None:
        return False, MatchingIssue(
            type="missing_grn",
            severity="exception",
            message="Invoice does not reference a goods receipt note" if not invoice.grn_id else f"GRN {invoice.grn_number or invoice.grn_id} not found",
            details={"grn_id": invoice.grn_id, "grn_number": invoice.grn_number}
        )
    return True, None


def check_supplier_match(invoice_supplier_id: Optional[int], po_supplier_id: Optional[int]) -> Tuple[bool, Optional[MatchingIssue]]:
    """
    Check if invoice supplier matches PO supplier

    Returns:
        (matches, issue) tuple
    """
    if invoice_supplier_id is None:
        return False, MatchingIssue(
            type="supplier_mismatch",
            severity="exception",
            message="Invoice supplier not identified",
            details={"invoice_supplier_id": None, "po_supplier_id": po_supplier_id}
        )

    if invoice_supplier_id != po_supplier_id:
        return False, MatchingIssue(
            type="supplier_mismatch",
            severity="exception",
            message="Invoice supplier does not match PO supplier",
            details={"invoice_supplier_id": invoice_supplier_id, "po_supplier_id": po_supplier_id}
        )

    return True, None


def check_currency_match(invoice_currency: str, po_currency: str) -> Tuple[bool, Optional[MatchingIssue]]:
    """
    Check if invoice currency matches PO currency

    Returns:
        (matches, issue) tuple
    """
    if invoice_currency.upper() != po_currency.upper():
        return False, MatchingIssue(
            type="currency_mismatch",
            severity="exception",
            message=f"Invoice currency ({invoice_currency}) does not match PO currency ({po_currency})",
            details={"invoice_currency": invoice_currency, "po_currency": po_currency}
        )
    return True, None


def check_total_match(
    invoice_value: Decimal,
    received_value: Decimal,
    tolerance: Optional[float] = None
) -> Tuple[bool, Optional[MatchingIssue], Optional[Decimal], Optional[float]]:
    """
    Check the invoiced value (before tax and discount) against the value of
    goods accepted on the GRN, within tolerance

    Returns:
        (matches, issue, difference, difference_percent) tuple
    """
    if tolerance is None:
        tolerance = settings.matching_total_tolerance

    difference = abs(invoice_value - received_value)
    difference_percent = float(difference / received_value * 100) if received_value > 0 else (0.0 if difference == 0 else 100.0)

    if difference_percent > (tolerance * 100):  # Convert tolerance to percentage
        severity = "exception" if difference_percent > 5 else "needs_review"
        return False, MatchingIssue(
            type="total_mismatch",
            severity=severity,
            message=f"Invoiced value ({invoice_value}) differs from received value ({received_value}) by {difference_percent:.2f}%",
            details={
                "invoice_value": float(invoice_value),
                "received_value": float(received_value),
                "difference": float(difference),
                "difference_percent": difference_percent
            }
        ), difference, difference_percent

    return True, None, difference, difference_percent


def _normalise(text: Optional[str]) -> str:
    return (text or "").lower().strip()


def _similarity(first: str, second: str) -> float:
    """Calculate string similarity using SequenceMatcher"""
    return difflib.SequenceMatcher(None, _normalise(first), _normalise(second)).ratio()


def _find_po_item(
    invoice_item: InvoiceItem,
    po_items: List[PurchaseOrderItem],
    claimed: set
) -> Optional[PurchaseOrderItem]:
    """
    Find the PO line an invoice line bills for.

    Matching strategy (in order of priority):
    1. poItemId back-reference
    2. Exact item code
    3. Exact item name (case-insensitive)
    4. Fuzzy item name (similarity >= FUZZY_THRESHOLD)
    """
    available = [item for item in po_items if id(item) not in claimed]

    if invoice_item.po_item_id is not None:
        for po_item in available:
            if po_item.id == invoice_item.po_item_id:
                return po_item

    if invoice_item.item_code:
        for po_item in available:
            if po_item.item_code and po_item.item_code == invoice_item.item_code:
                return po_item

    for po_item in available:
        if _normalise(po_item.item_name) == _normalise(invoice_item.item_name):
            return po_item

    best_match, best_score = None, 0.0
    for po_item in available:
        score = _similarity(po_item.item_name, invoice_item.item_name)
        if score >= FUZZY_THRESHOLD and score > best_score:
            best_match, best_score = po_item, score
    return best_match


def _find_grn_item(
    invoice_item: InvoiceItem,
    po_item: Optional[PurchaseOrderItem],
    grn_items: List[GRNItem]
) -> Optional[GRNItem]:
    if invoice_item.grn_item_id is not None:
        for grn_item in grn_items:
            if grn_item.id == invoice_item.grn_item_id:
                return grn_item
    if po_item is not None and po_item.id is not None:
        for grn_item in grn_items:
            if grn_item.po_item_id == po_item.id:
                return grn_item
    for grn_item in grn_items:
        if _normalise(grn_item.item_name) == _normalise(invoice_item.item_name):
            return grn_item
    return None


def match_line_items(
    invoice_items: List[InvoiceItem],
    po_items: List[PurchaseOrderItem],
    grn_items: List[GRNItem]
) -> List[LineItemMatch]:
    """
    Match each invoice line to its PO line and GRN line and compare:

    - invoiced quantity must not exceed the GRN accepted quantity
    - invoiced quantity must not exceed the PO quantity
    - invoiced unit price must equal the PO unit price (within tolerance)

    PO lines nobody billed are reported as unmatched entries with invoice_line_no -1.

    Returns:
        List of LineItemMatch objects
    """
    quantity_tolerance = Decimal(str(settings.matching_quantity_tolerance))
    price_tolerance = Decimal(str(settings.matching_price_tolerance))

    matches = []
    claimed: Dict[int, PurchaseOrderItem] = {}

    for line_no, invoice_item in enumerate(invoice_items, start=1):
        match = LineItemMatch(
            invoice_line_no=line_no,
            item_name=invoice_item.item_name,
            matched=False,
            issues=[],
            invoice_quantity=invoice_item.invoice_quantity,
            invoice_unit_price=invoice_item.unit_price
        )

        po_item = _find_po_item(invoice_item, po_items, set(claimed))
        if po_item is None:
            match.issues.append(f"Line {line_no}: No matching PO line found")
            matches.append(match)
            continue
        claimed[id(po_item)] = po_item

        match.po_item_id = po_item.id
        match.po_quantity = po_item.quantity
        match.po_unit_price = po_item.unit_price

        grn_item = _find_grn_item(invoice_item, po_item, grn_items)
        if grn_item is None:
            match.issues.append(f"Line {line_no}: Item was not received on the GRN")
        else:
            match.grn_item_id = grn_item.id
            match.grn_accepted_quantity = grn_item.accepted_quantity
            if invoice_item.invoice_quantity - grn_item.accepted_quantity > quantity_tolerance:
                match.issues.append(
                    f"Quantity exceeds accepted: invoice={invoice_item.invoice_quantity}, GRN accepted={grn_item.accepted_quantity}"
                )

        if invoice_item.invoice_quantity - po_item.quantity > quantity_tolerance:
            match.issues.append(
                f"Quantity exceeds ordered: invoice={invoice_item.invoice_quantity}, PO={po_item.quantity}"
            )

        if abs(invoice_item.unit_price - po_item.unit_price) > price_tolerance:
            match.issues.append(
                f"Unit price mismatch: invoice={invoice_item.unit_price}, PO={po_item.unit_price}"
            )

        match.matched = len(match.issues) == 0
        matches.append(match)

    # Check for unbilled PO lines
    for po_item in po_items:
        if id(po_item) not in claimed:
            matches.append(LineItemMatch(
                invoice_line_no=-1,  # No invoice line
                item_name=po_item.item_name,
                po_item_id=po_item.id,
                matched=False,
                issues=[f"PO line {po_item.item_name} not found in invoice"],
                po_quantity=po_item.quantity,
                po_unit_price=po_item.unit_price
            ))

    return matches
