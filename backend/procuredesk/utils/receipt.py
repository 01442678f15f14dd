"""
Goods-receipt line rules.

A receipt line always satisfies accepted + rejected == received. Editing one of
the three quantities moves the others:

- received: everything received is accepted (accepted = received, rejected = 0)
- accepted: rejected = received - accepted, accepted clamped to [0, received]
- rejected: accepted = received - rejected, rejected clamped to [0, received]

pending = po_quantity - accepted is left unclamped, so over-acceptance shows up
as a negative pending quantity instead of being hidden.
"""
from decimal import Decimal
from typing import Any, Iterable, List
from procuredesk.exceptions import DocumentValidationError
from procuredesk.schemas.grn import GRN, GRNItem, GRNStatus, QualityStatus
from procuredesk.schemas.po import PurchaseOrderItem
from procuredesk.utils.pricing import ZERO, calculate_line, to_decimal

RECEIPT_FIELDS = ("received_quantity", "accepted_quantity", "rejected_quantity")

_FIELD_ALIASES = {
    "receivedQuantity": "received_quantity",
    "acceptedQuantity": "accepted_quantity",
    "rejectedQuantity": "rejected_quantity",
}


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))


def outstanding_quantity(item: PurchaseOrderItem) -> Decimal:
    """What is still to be received on a PO line"""
    if item.pending_quantity is not None:
        return item.pending_quantity
    return item.quantity - (item.received_quantity or ZERO)


def recompute_receipt_line(item: GRNItem) -> GRNItem:
    total_value = calculate_line(item.accepted_quantity, item.unit_price).base
    return item.model_copy(update={
        "pending_quantity": item.po_quantity - item.accepted_quantity,
        "total_value": total_value,
    })


def edit_receipt_line(item: GRNItem, field: str, value: Any) -> GRNItem:
    """
    Apply a single-field quantity edit to a receipt line and recompute it.

    Raises:
        DocumentValidationError for an unknown field or a negative quantity
    """
    field = _FIELD_ALIASES.get(field, field)
    if field not in RECEIPT_FIELDS:
        raise DocumentValidationError(f"'{field}' is not an editable receipt quantity")

    value = to_decimal(value)
    if value < 0:
        raise DocumentValidationError(f"{field} cannot be negative")

    received = item.received_quantity
    if field == "received_quantity":
        received, accepted, rejected = value, value, ZERO
    elif field == "accepted_quantity":
        accepted = _clamp(value, ZERO, received)
        rejected = received - accepted
    else:
        rejected = _clamp(value, ZERO, received)
        accepted = received - rejected

    return recompute_receipt_line(item.model_copy(update={
        "received_quantity": received,
        "accepted_quantity": accepted,
        "rejected_quantity": rejected,
    }))


def validate_receipt_lines(items: List[GRNItem]) -> None:
    """
    Checks run before a GRN is saved.

    Raises:
        DocumentValidationError listing every offending line
    """
    if not items:
        raise DocumentValidationError("No items to receive")

    if not any(item.received_quantity > 0 for item in items):
        raise DocumentValidationError("Please enter received quantity for at least one item")

    errors = []
    for item in items:
        if item.received_quantity < 0:
            errors.append({
                "field": "receivedQuantity",
                "message": f"Received quantity cannot be negative for {item.item_name}",
            })
        if item.received_quantity > item.po_quantity:
            errors.append({
                "field": "receivedQuantity",
                "message": f"Received quantity cannot exceed PO quantity for {item.item_name}",
            })
        if not ZERO <= item.accepted_quantity <= item.received_quantity:
            errors.append({
                "field": "acceptedQuantity",
                "message": f"Accepted quantity must be between 0 and received quantity for {item.item_name}",
            })
        if not ZERO <= item.rejected_quantity <= item.received_quantity:
            errors.append({
                "field": "rejectedQuantity",
                "message": f"Rejected quantity must be between 0 and received quantity for {item.item_name}",
            })
        if item.accepted_quantity + item.rejected_quantity != item.received_quantity:
            errors.append({
                "field": "acceptedQuantity",
                "message": f"Accepted + Rejected must equal Received quantity for {item.item_name}",
            })
    if errors:
        raise DocumentValidationError(errors[0]["message"], errors)


def total_received_value(items: Iterable[GRNItem]) -> Decimal:
    return sum((item.total_value for item in items), ZERO)


def recalculate_grn(grn: GRN) -> GRN:
    items = [recompute_receipt_line(item) for item in grn.items]
    return grn.model_copy(update={
        "items": items,
        "total_received_value": total_received_value(items),
    })


def receipt_completeness(items: Iterable[GRNItem]) -> GRNStatus:
    """FULLY_RECEIVED once nothing is pending on any line"""
    if all(item.pending_quantity <= 0 for item in items):
        return GRNStatus.FULLY_RECEIVED
    return GRNStatus.PARTIALLY_RECEIVED


def quality_outcome(items: Iterable[GRNItem]) -> GRNStatus:
    """
    Roll per-line inspection results up to the GRN status.

    Raises:
        DocumentValidationError while any line is still PENDING
    """
    statuses = [item.quality_status for item in items]
    if any(status == QualityStatus.PENDING for status in statuses):
        raise DocumentValidationError("Quality check is incomplete: some items are still pending")
    if any(status in (QualityStatus.FAILED, QualityStatus.PARTIALLY_PASSED) for status in statuses):
        return GRNStatus.QUALITY_CHECK_FAILED
    return GRNStatus.QUALITY_CHECK_PASSED
