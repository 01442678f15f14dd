"""
Line-total calculation shared by the PO, GRN and invoice editors.

    base      = quantity * unit_price
    discount  = base * discount_percentage / 100
    taxable   = base - discount
    tax_n     = taxable * rate_n / 100
    total_tax = sum(tax_n)
    total     = taxable + total_tax

Every money figure is rounded half-up to the configured number of places per
line, and document totals are summed from the rounded lines only, so
recalculating a document any number of times gives the same result.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional
from procuredesk.config import settings
from procuredesk.exceptions import DocumentValidationError
from procuredesk.schemas.po import PurchaseOrder, PurchaseOrderItem
from procuredesk.schemas.invoice import Invoice, InvoiceItem

HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Coerce form input (None, "", str, int, float, Decimal) to Decimal; blanks are zero."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so 0.1 stays 0.1 instead of its binary expansion
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise DocumentValidationError(f"'{value}' is not a number")


def round_money(value: Any, places: Optional[int] = None) -> Decimal:
    if places is None:
        places = settings.money_decimal_places
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


@dataclass
class LineAmounts:
    base: Decimal
    discount: Decimal
    taxable: Decimal
    taxes: Dict[str, Decimal] = field(default_factory=dict)
    total_tax: Decimal = ZERO
    total: Decimal = ZERO


def calculate_line(
    quantity: Any,
    unit_price: Any,
    discount_percentage: Any = 0,
    tax_rates: Optional[Mapping[str, Any]] = None,
) -> LineAmounts:
    """
    Apply the calculation contract to one line.

    Args:
        quantity: Ordered / received / invoiced quantity
        unit_price: Price per unit
        discount_percentage: 0-100, applied before tax
        tax_rates: Named percentage rates, e.g. {"cgst": 9, "sgst": 9}

    Returns:
        LineAmounts with every money figure rounded

    Raises:
        DocumentValidationError for negative prices or rates, or a discount outside 0-100
    """
    quantity = to_decimal(quantity)
    unit_price = to_decimal(unit_price)
    discount_percentage = to_decimal(discount_percentage)

    if unit_price < 0:
        raise DocumentValidationError("Unit price cannot be negative")
    if discount_percentage < 0 or discount_percentage > HUNDRED:
        raise DocumentValidationError("Discount percentage must be between 0 and 100")

    base = round_money(quantity * unit_price)
    discount = round_money(base * discount_percentage / HUNDRED)
    taxable = base - discount

    taxes = {}
    for name, rate in (tax_rates or {}).items():
        rate = to_decimal(rate)
        if rate < 0:
            raise DocumentValidationError(f"Tax rate {name} cannot be negative")
        taxes[name] = round_money(taxable * rate / HUNDRED)

    total_tax = sum(taxes.values(), ZERO)
    return LineAmounts(
        base=base,
        discount=discount,
        taxable=taxable,
        taxes=taxes,
        total_tax=total_tax,
        total=taxable + total_tax,
    )


@dataclass
class DocumentTotals:
    sub_total: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    freight_charges: Decimal
    other_charges: Decimal
    grand_total: Decimal


def document_totals(
    line_bases: Iterable[Decimal],
    line_taxes: Iterable[Decimal],
    discount_amount: Any = 0,
    freight_charges: Any = 0,
    other_charges: Any = 0,
) -> DocumentTotals:
    """grand_total = sub_total + tax_amount - discount_amount + freight_charges + other_charges"""
    sub_total = sum(line_bases, ZERO)
    tax_amount = sum(line_taxes, ZERO)
    discount_amount = round_money(discount_amount)
    freight_charges = round_money(freight_charges)
    other_charges = round_money(other_charges)
    return DocumentTotals(
        sub_total=sub_total,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        freight_charges=freight_charges,
        other_charges=other_charges,
        grand_total=sub_total + tax_amount - discount_amount + freight_charges + other_charges,
    )


def price_po_item(item: PurchaseOrderItem) -> PurchaseOrderItem:
    """PO lines carry no discount; tax1/tax2 are charged on quantity * unit price."""
    amounts = calculate_line(
        item.quantity,
        item.unit_price,
        tax_rates={"tax1": item.tax1_rate, "tax2": item.tax2_rate},
    )
    return item.model_copy(update={
        "total_amount": amounts.base,
        "tax1_amount": amounts.taxes["tax1"],
        "tax2_amount": amounts.taxes["tax2"],
        "grand_total": amounts.total,
    })


def recalculate_purchase_order(po: PurchaseOrder) -> PurchaseOrder:
    items = [price_po_item(item) for item in po.items]
    totals = document_totals(
        (item.total_amount for item in items),
        (item.tax1_amount + item.tax2_amount for item in items),
        po.discount_amount,
        po.freight_charges,
        po.other_charges,
    )
    return po.model_copy(update={
        "items": items,
        "sub_total": totals.sub_total,
        "tax_amount": totals.tax_amount,
        "discount_amount": totals.discount_amount,
        "freight_charges": totals.freight_charges,
        "other_charges": totals.other_charges,
        "grand_total": totals.grand_total,
    })


def price_invoice_item(item: InvoiceItem) -> InvoiceItem:
    amounts = calculate_line(
        item.invoice_quantity,
        item.unit_price,
        item.discount_percentage,
        tax_rates={
            "cgst": item.cgst_rate,
            "sgst": item.sgst_rate,
            "igst": item.igst_rate,
            "other": item.other_tax_rate,
        },
    )
    return item.model_copy(update={
        "base_amount": amounts.base,
        "discount_amount": amounts.discount,
        "taxable_amount": amounts.taxable,
        "cgst_amount": amounts.taxes["cgst"],
        "sgst_amount": amounts.taxes["sgst"],
        "igst_amount": amounts.taxes["igst"],
        "other_tax_amount": amounts.taxes["other"],
        "total_tax_amount": amounts.total_tax,
        "total_amount": amounts.total,
    })


def recalculate_invoice(invoice: Invoice) -> Invoice:
    """
    Invoice discounts live on the lines, so the document discount is their sum;
    freight and other charges are document-level.
    """
    items = [price_invoice_item(item) for item in invoice.items]
    totals = document_totals(
        (item.base_amount for item in items),
        (item.total_tax_amount for item in items),
        sum((item.discount_amount for item in items), ZERO),
        invoice.freight_charges,
        invoice.other_charges,
    )
    paid_amount = round_money(invoice.paid_amount)
    return invoice.model_copy(update={
        "items": items,
        "sub_total": totals.sub_total,
        "tax_amount": totals.tax_amount,
        "discount_amount": totals.discount_amount,
        "freight_charges": totals.freight_charges,
        "other_charges": totals.other_charges,
        "grand_total": totals.grand_total,
        "paid_amount": paid_amount,
        "balance_amount": totals.grand_total - paid_amount,
    })
