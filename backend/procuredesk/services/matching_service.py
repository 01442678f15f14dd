from typing import Optional
from procuredesk.schemas.po import PurchaseOrder
from procuredesk.schemas.grn import GRN
from procuredesk.schemas.invoice import Invoice
from procuredesk.schemas.matching import ThreeWayMatchResult, MatchingIssue
from procuredesk.utils.matching_rules import (
    check_po_linked,
    check_grn_linked,
    check_supplier_match,
    check_currency_match,
    check_total_match,
    match_line_items
)


def three_way_match(
    invoice: Invoice,
    po: Optional[PurchaseOrder],
    grn: Optional[GRN]
) -> ThreeWayMatchResult:
    """
    Match an invoice against its PO (what was ordered, at what price) and its
    GRN (what was accepted into stock)

    Args:
        invoice: Invoice being matched
        po: Linked purchase order, None if it could not be loaded
        grn: Linked goods receipt, None if the invoice has none

    Returns:
        ThreeWayMatchResult with status "matched" or "mismatch"
    """
    issues = []

    po_linked, issue = check_po_linked(po, invoice)
    if not po_linked:
        return ThreeWayMatchResult(status="mismatch", overall_match=False, issues=[issue])

    grn_linked, issue = check_grn_linked(grn, invoice)
    if not grn_linked:
        return ThreeWayMatchResult(status="mismatch", overall_match=False, issues=[issue])

    supplier_match, issue = check_supplier_match(invoice.supplier_id, po.supplier_id)
    if not supplier_match and issue:
        issues.append(issue)

    currency_match, issue = check_currency_match(invoice.currency or "INR", po.currency or "INR")
    if not currency_match and issue:
        issues.append(issue)

    total_match, issue, total_diff, total_diff_percent = check_total_match(
        invoice.sub_total,
        grn.total_received_value
    )
    if not total_match and issue:
        issues.append(issue)

    line_item_matches = match_line_items(invoice.items, po.items, grn.items)
    for line_match in line_item_matches:
        # PO lines left unbilled are allowed (partial invoicing); they are reported, not failed
        if line_match.invoice_line_no < 0:
            continue
        if not line_match.matched:
            issues.append(MatchingIssue(
                type="line_item_mismatch",
                severity="needs_review",
                message=f"Line {line_match.invoice_line_no}: {', '.join(line_match.issues)}",
                details={
                    "invoice_line_no": line_match.invoice_line_no,
                    "po_item_id": line_match.po_item_id,
                    "grn_item_id": line_match.grn_item_id,
                    "issues": line_match.issues
                }
            ))

    overall_match = len(issues) == 0

    return ThreeWayMatchResult(
        status="matched" if overall_match else "mismatch",
        overall_match=overall_match,
        issues=issues,
        line_item_matches=line_item_matches,
        supplier_match=supplier_match,
        currency_match=currency_match,
        total_match=total_match,
        total_difference=total_diff,
        total_difference_percent=total_diff_percent
    )
