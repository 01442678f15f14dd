"""
Status transition tables for purchase orders, GRNs and invoices.

Each table maps (current status, action) to the statuses the action may lead
to and the inputs it needs. Services ask the table before calling the API, so
an illegal action is refused the same way for every document type instead of
being hidden behind whichever buttons a screen happens to render.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple
from procuredesk.exceptions import MissingInputError, WorkflowError
from procuredesk.schemas.po import POStatus
from procuredesk.schemas.grn import GRNStatus
from procuredesk.schemas.invoice import InvoiceStatus

# A guard receives the action inputs and returns an error message, or None if satisfied
Guard = Callable[[Dict[str, Any]], Optional[str]]


@dataclass(frozen=True)
class Transition:
    action: str
    sources: FrozenSet[str]
    targets: Tuple[str, ...] = ()  # empty: status unchanged (edits)
    required: Tuple[str, ...] = ()
    guards: Tuple[Guard, ...] = ()


def _status_value(status: Any) -> str:
    return str(getattr(status, "value", status))


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class StatusMachine:
    """Transition table for one document type"""

    def __init__(
        self,
        document_type: str,
        initial: str,
        terminal: Iterable[str],
        transitions: Iterable[Transition],
    ):
        self.document_type = document_type
        self.initial = initial
        self.terminal = frozenset(terminal)
        self.transitions = {t.action: t for t in transitions}

    def is_terminal(self, status: Any) -> bool:
        return _status_value(status) in self.terminal

    def can(self, status: Any, action: str) -> bool:
        transition = self.transitions.get(action)
        return transition is not None and _status_value(status) in transition.sources

    def available_actions(self, status: Any) -> List[str]:
        status = _status_value(status)
        return [action for action, t in self.transitions.items() if status in t.sources]

    def check(self, status: Any, action: str, **inputs: Any) -> Transition:
        """
        Validate an action against the table.

        Raises:
            WorkflowError if the action is unknown or not allowed from this status
            MissingInputError if a required input is blank
            WorkflowError if a guard (e.g. approval date after PO date) fails
        """
        status = _status_value(status)
        transition = self.transitions.get(action)
        if transition is None or status not in transition.sources:
            raise WorkflowError(self.document_type, status, action)

        missing = [name for name in transition.required if _is_blank(inputs.get(name))]
        if missing:
            raise MissingInputError(self.document_type, status, action, missing)

        for guard in transition.guards:
            problem = guard(inputs)
            if problem:
                raise WorkflowError(self.document_type, status, action, problem)
        return transition

    def next_status(self, status: Any, action: str, outcome: Any = None, **inputs: Any) -> str:
        """
        Return the status after the action.

        Actions with several possible targets (record_receipt, three_way_match, ...)
        need the outcome the caller computed; it must be one of the targets.
        """
        transition = self.check(status, action, **inputs)
        if not transition.targets:
            return _status_value(status)
        if len(transition.targets) == 1 and outcome is None:
            return transition.targets[0]
        outcome = _status_value(outcome) if outcome is not None else None
        if outcome not in transition.targets:
            raise WorkflowError(
                self.document_type,
                _status_value(status),
                action,
                f"{action} cannot lead to {outcome}; expected one of {', '.join(transition.targets)}",
            )
        return outcome


def _approval_not_before_po_date(inputs: Dict[str, Any]) -> Optional[str]:
    approval_date: Optional[date] = inputs.get("approval_date")
    po_date: Optional[date] = inputs.get("po_date")
    if approval_date and po_date and approval_date < po_date:
        return f"Approval date {approval_date} cannot be before PO date {po_date}"
    return None


def _has_items(inputs: Dict[str, Any]) -> Optional[str]:
    if not inputs.get("items"):
        return "At least one item is required"
    return None


def _positive_payment(inputs: Dict[str, Any]) -> Optional[str]:
    amount = inputs.get("payment_amount")
    balance = inputs.get("balance_amount")
    if amount is None or amount <= 0:
        return "Payment amount must be greater than zero"
    if balance is not None and amount > balance:
        return f"Payment amount {amount} exceeds balance {balance}"
    return None


def _states(*statuses) -> FrozenSet[str]:
    return frozenset(s.value for s in statuses)


PO = POStatus
PURCHASE_ORDER_WORKFLOW = StatusMachine(
    document_type="purchase order",
    initial=PO.DRAFT.value,
    terminal=[PO.REJECTED.value, PO.CLOSED.value, PO.CANCELLED.value],
    transitions=[
        Transition("edit", _states(PO.DRAFT, PO.CREATED)),
        Transition("delete", _states(PO.DRAFT, PO.CREATED)),
        Transition(
            "submit",
            _states(PO.DRAFT, PO.CREATED, PO.SUBMITTED),
            (PO.SUBMITTED.value,),
            required=("raised_by", "po_date", "delivery_date", "payment_terms"),
        ),
        Transition(
            "approve",
            _states(PO.SUBMITTED),
            (PO.APPROVED.value,),
            required=("approved_by", "approval_date"),
            guards=(_approval_not_before_po_date,),
        ),
        Transition("reject", _states(PO.SUBMITTED), (PO.REJECTED.value,), required=("reason",)),
        Transition("cancel", _states(PO.APPROVED), (PO.CANCELLED.value,), required=("reason",)),
        Transition(
            "record_receipt",
            _states(PO.APPROVED, PO.PARTIALLY_DELIVERED),
            (PO.PARTIALLY_DELIVERED.value, PO.DELIVERED.value),
        ),
        Transition(
            "record_invoice",
            _states(PO.DELIVERED, PO.PARTIALLY_INVOICED),
            (PO.PARTIALLY_INVOICED.value, PO.INVOICED.value),
        ),
        Transition("close", _states(PO.INVOICED), (PO.CLOSED.value,)),
    ],
)

G = GRNStatus
GRN_WORKFLOW = StatusMachine(
    document_type="GRN",
    initial=G.DRAFT.value,
    terminal=[G.REJECTED.value, G.CLOSED.value, G.CANCELLED.value],
    transitions=[
        Transition("edit", _states(G.DRAFT)),
        Transition("submit", _states(G.DRAFT), (G.PENDING_APPROVAL.value,), guards=(_has_items,)),
        Transition("approve", _states(G.DRAFT, G.PENDING_APPROVAL), (G.APPROVED.value,), guards=(_has_items,)),
        Transition("reject", _states(G.PENDING_APPROVAL), (G.REJECTED.value,), required=("reason",)),
        Transition(
            "record_receipt",
            _states(G.APPROVED),
            (G.PARTIALLY_RECEIVED.value, G.FULLY_RECEIVED.value),
        ),
        Transition(
            "start_quality_check",
            _states(G.APPROVED, G.PARTIALLY_RECEIVED, G.FULLY_RECEIVED),
            (G.QUALITY_CHECK_PENDING.value,),
        ),
        Transition(
            "complete_quality_check",
            _states(G.QUALITY_CHECK_PENDING),
            (G.QUALITY_CHECK_PASSED.value, G.QUALITY_CHECK_FAILED.value),
        ),
        Transition("close", _states(G.APPROVED, G.FULLY_RECEIVED, G.QUALITY_CHECK_PASSED), (G.CLOSED.value,)),
        Transition("cancel", _states(G.DRAFT, G.PENDING_APPROVAL), (G.CANCELLED.value,), required=("reason",)),
    ],
)

I = InvoiceStatus
INVOICE_WORKFLOW = StatusMachine(
    document_type="invoice",
    initial=I.DRAFT.value,
    terminal=[I.REJECTED.value, I.PAID.value, I.CANCELLED.value],
    transitions=[
        Transition("edit", _states(I.DRAFT)),
        Transition("submit", _states(I.DRAFT), (I.SUBMITTED.value,), guards=(_has_items,)),
        Transition("request_approval", _states(I.SUBMITTED), (I.PENDING_APPROVAL.value,)),
        Transition(
            "approve",
            _states(I.SUBMITTED, I.PENDING_APPROVAL, I.ON_HOLD),
            (I.APPROVED.value,),
            required=("approved_by",),
        ),
        Transition(
            "reject",
            _states(I.SUBMITTED, I.PENDING_APPROVAL, I.ON_HOLD),
            (I.REJECTED.value,),
            required=("reason",),
        ),
        Transition(
            "three_way_match",
            _states(I.APPROVED, I.THREE_WAY_MISMATCH),
            (I.THREE_WAY_MATCHED.value, I.THREE_WAY_MISMATCH.value),
        ),
        Transition(
            "record_payment",
            _states(I.APPROVED, I.THREE_WAY_MATCHED, I.PARTIALLY_PAID, I.OVERDUE),
            (I.PARTIALLY_PAID.value, I.PAID.value),
            guards=(_positive_payment,),
        ),
        Transition(
            "hold",
            _states(I.SUBMITTED, I.PENDING_APPROVAL, I.APPROVED, I.THREE_WAY_MATCHED, I.THREE_WAY_MISMATCH),
            (I.ON_HOLD.value,),
            required=("reason",),
        ),
        Transition(
            "mark_overdue",
            _states(I.APPROVED, I.THREE_WAY_MATCHED, I.PARTIALLY_PAID),
            (I.OVERDUE.value,),
        ),
        Transition(
            "cancel",
            _states(I.DRAFT, I.SUBMITTED, I.PENDING_APPROVAL, I.ON_HOLD),
            (I.CANCELLED.value,),
            required=("reason",),
        ),
    ],
)
