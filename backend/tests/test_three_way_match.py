from decimal import Decimal

from procuredesk.services.matching_service import three_way_match
from procuredesk.utils.matching_rules import check_total_match, match_line_items


class TestThreeWayMatch:
    """
    An invoice matches when supplier and currency agree with the PO, the billed
    value agrees with what the GRN accepted, and no line bills more than was
    ordered or accepted, or at a different price.
    """

    def test_clean_match(self, invoice, approved_po, grn):
        result = three_way_match(invoice, approved_po, grn)

        assert result.status == "matched"
        assert result.overall_match
        assert result.issues == []
        assert result.remarks == "PO, GRN and invoice agree"
        assert result.line_item_matches[0].matched

    def test_missing_po_is_an_exception(self, invoice, grn):
        result = three_way_match(invoice, None, grn)
        assert result.status == "mismatch"
        assert result.issues[0].type == "missing_po"
        assert result.issues[0].severity == "exception"

    def test_missing_grn(self, invoice, approved_po):
        result = three_way_match(invoice.model_copy(update={"grn_id": None}), approved_po, None)
        assert result.issues[0].type == "missing_grn"
        assert result.issues[0].message == "Invoice does not reference a goods receipt note"

    def test_supplier_mismatch(self, invoice, approved_po, grn):
        result = three_way_match(invoice.model_copy(update={"supplier_id": 99}), approved_po, grn)
        assert not result.supplier_match
        assert any(issue.type == "supplier_mismatch" for issue in result.issues)

    def test_currency_mismatch(self, invoice, approved_po, grn):
        result = three_way_match(invoice.model_copy(update={"currency": "USD"}), approved_po, grn)
        assert not result.currency_match

    def test_billing_more_than_accepted(self, invoice, approved_po, grn):
        """
        Business Rule: invoice quantity <= GRN accepted quantity.
        """
        grn_item = grn.items[0].model_copy(update={"accepted_quantity": Decimal("1"), "rejected_quantity": Decimal("1")})
        grn = grn.model_copy(update={"items": [grn_item], "total_received_value": Decimal("200000.00")})

        result = three_way_match(invoice, approved_po, grn)

        assert result.status == "mismatch"
        assert not result.total_match
        line_issue = next(issue for issue in result.issues if issue.type == "line_item_mismatch")
        assert "Quantity exceeds accepted" in line_issue.message
        assert line_issue.severity == "needs_review"

    def test_price_differs_from_po(self, invoice, approved_po, grn):
        item = invoice.items[0].model_copy(update={"unit_price": Decimal("199000")})
        result = three_way_match(invoice.model_copy(update={"items": [item]}), approved_po, grn)
        assert any("Unit price mismatch" in issue.message for issue in result.issues)

    def test_unbilled_po_line_does_not_fail_the_match(self, invoice, approved_po, grn, po_item):
        """Partial invoicing is allowed; the unbilled line is reported only."""
        extra = po_item.model_copy(update={"id": 12, "item_name": "Docking station", "item_code": "DOCK-1"})
        po = approved_po.model_copy(update={"items": [po_item, extra]})

        result = three_way_match(invoice, po, grn)

        assert result.overall_match
        unbilled = [m for m in result.line_item_matches if m.invoice_line_no == -1]
        assert [m.po_item_id for m in unbilled] == [12]


class TestMatchingRules:

    def test_total_within_tolerance(self):
        ok, issue, difference, percent = check_total_match(Decimal("1005"), Decimal("1000"), tolerance=0.01)
        assert ok and issue is None
        assert difference == Decimal("5")
        assert percent == 0.5

    def test_small_total_gap_needs_review(self):
        ok, issue, _, _ = check_total_match(Decimal("1030"), Decimal("1000"), tolerance=0.01)
        assert not ok
        assert issue.severity == "needs_review"

    def test_large_total_gap_is_an_exception(self):
        ok, issue, _, percent = check_total_match(Decimal("1100"), Decimal("1000"), tolerance=0.01)
        assert percent == 10.0
        assert issue.severity == "exception"

    def test_nothing_received(self):
        ok, _, _, percent = check_total_match(Decimal("10"), Decimal("0"), tolerance=0.01)
        assert not ok
        assert percent == 100.0

    def test_lines_fall_back_to_fuzzy_names(self, invoice, po_item, grn):
        item = invoice.items[0].model_copy(update={
            "po_item_id": None,
            "grn_item_id": None,
            "item_name": "Dell Latitude-7440",
        })
        matches = match_line_items([item], [po_item.model_copy(update={"item_code": None})], grn.items)
        assert matches[0].po_item_id == po_item.id
        assert matches[0].grn_item_id == grn.items[0].id
        assert matches[0].matched

    def test_unknown_line(self, invoice, po_item, grn):
        item = invoice.items[0].model_copy(update={"po_item_id": None, "grn_item_id": None, "item_name": "Paper"})
        matches = match_line_items([item], [po_item.model_copy(update={"item_code": None})], grn.items)
        assert not matches[0].matched
        assert "No matching PO line found" in matches[0].issues[0]
