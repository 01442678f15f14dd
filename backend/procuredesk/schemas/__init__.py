from procuredesk.schemas.common import CamelModel, Page, CommandResult, AvailableActions
from procuredesk.schemas.po import PurchaseOrder, PurchaseOrderItem, POCreate, POStatus, RFP
from procuredesk.schemas.grn import GRN, GRNItem, GRNCreate, GRNStatus, QualityStatus
from procuredesk.schemas.invoice import Invoice, InvoiceItem, InvoiceCreate, InvoiceStatus, InvoiceType
from procuredesk.schemas.matching import ThreeWayMatchResult, MatchingIssue, LineItemMatch
from procuredesk.schemas.master import MasterRecord, MasterResource

__all__ = [
    "CamelModel",
    "Page",
    "CommandResult",
    "AvailableActions",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "POCreate",
    "POStatus",
    "RFP",
    "GRN",
    "GRNItem",
    "GRNCreate",
    "GRNStatus",
    "QualityStatus",
    "Invoice",
    "InvoiceItem",
    "InvoiceCreate",
    "InvoiceStatus",
    "InvoiceType",
    "ThreeWayMatchResult",
    "MatchingIssue",
    "LineItemMatch",
    "MasterRecord",
    "MasterResource",
]
