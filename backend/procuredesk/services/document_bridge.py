"""
Service to bridge one procurement document into the next one in the flow:
RFP (selected quotation) -> PurchaseOrder -> GRN -> Invoice.

Every builder is pure: it takes documents already fetched from the procurement
API and returns a new, fully recalculated draft. Nothing is sent upstream here.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from procuredesk.config import settings
from procuredesk.exceptions import DocumentValidationError, WorkflowError
from procuredesk.schemas.po import POCreate, POStatus, PurchaseOrder, PurchaseOrderItem, RFP
from procuredesk.schemas.grn import GRN, GRNCreate, GRNItem, GRNItemInput, GRNStatus, QualityStatus
from procuredesk.schemas.invoice import Invoice, InvoiceCreate, InvoiceItem, InvoiceStatus
from procuredesk.utils.pricing import recalculate_invoice, to_decimal
from procuredesk.utils.receipt import outstanding_quantity, recalculate_grn, validate_receipt_lines

logger = logging.getLogger(__name__)


def default_due_date(payment_terms: Optional[str], invoice_date: Optional[date] = None) -> date:
    """+30 days when the payment terms mention 30, otherwise +45 days"""
    start = invoice_date or date.today()
    if payment_terms and "30" in payment_terms:
        return start + timedelta(days=settings.short_term_due_days)
    return start + timedelta(days=settings.long_term_due_days)


class DocumentBridge:
    """Bridge service that derives PO, GRN and invoice drafts from their source documents"""

    def po_from_rfp(self, rfp: RFP) -> POCreate:
        """
        Build a PO draft from the quotation selected on an approved RFP.

        Items get the default intra-state tax split (CGST 9 + SGST 9 unless configured).

        Raises:
            DocumentValidationError if no quotation on the RFP is selected
        """
        quotation = next((q for q in rfp.quotations if q.is_selected), None)
        if quotation is None:
            raise DocumentValidationError("No selected quotation found for this RFP")

        items = [
            PurchaseOrderItem(
                item_name=q_item.item_name,
                item_code=q_item.item_code,
                item_description=q_item.description,
                remarks=q_item.remarks,
                delivery_date=rfp.delivery_date,
                quantity=q_item.quantity,
                unit_of_measurement=q_item.unit_of_measurement,
                unit_price=q_item.unit_price,
                tax1_type=settings.default_tax1_type,
                tax1_rate=to_decimal(settings.default_tax1_rate),
                tax2_type=settings.default_tax2_type,
                tax2_rate=to_decimal(settings.default_tax2_rate),
            )
            for q_item in quotation.items
        ]

        logger.info(f"Built PO draft from RFP {rfp.rfp_number or rfp.id}, quotation {quotation.quotation_number}")
        return POCreate(
            rfp_number=rfp.rfp_number,
            quotation_number=quotation.quotation_number,
            po_date=date.today(),
            delivery_date=rfp.delivery_date,
            supplier_id=quotation.supplier_id,
            supplier_name=quotation.supplier_name,
            department=rfp.department,
            payment_terms=quotation.payment_terms,
            terms_conditions=quotation.terms_and_conditions,
            items=items,
        )

    def grn_from_po(self, po: PurchaseOrder, data: GRNCreate) -> GRN:
        """
        Build a GRN draft against an approved PO.

        Each PO line becomes a receipt line pre-filled with what is still
        outstanding (pendingQuantity, or the ordered quantity less what was
        already received), all of it accepted. Lines the user entered override
        the defaults for their poItemId. Lines with nothing received are left
        out of the GRN.

        Raises:
            WorkflowError if the PO is not APPROVED
            DocumentValidationError if the resulting lines fail the receipt checks
        """
        if po.status != POStatus.APPROVED:
            raise WorkflowError(
                "purchase order",
                po.status.value,
                "receive goods against",
                f"Goods can only be received against an APPROVED purchase order (PO {po.po_number} is {po.status.value})",
            )

        inputs: Dict[int, GRNItemInput] = {line.po_item_id: line for line in (data.items or [])}
        unknown = [po_item_id for po_item_id in inputs if po_item_id not in {item.id for item in po.items}]
        if unknown:
            raise DocumentValidationError(
                f"PO {po.po_number} has no item(s) {', '.join(str(i) for i in unknown)}"
            )

        items: List[GRNItem] = []
        for po_item in po.items:
            line = inputs.get(po_item.id)
            if data.items is not None and line is None:
                # The user listed the lines they received; skip the rest
                continue
            items.append(self._receipt_line(po_item, line, data.warehouse_location))

        validate_receipt_lines(items)
        # Nothing arrived on these lines; they stay pending on the PO
        items = [item for item in items if item.received_quantity > 0]

        grn = recalculate_grn(GRN(
            po_id=po.id,
            po_number=po.po_number,
            po_date=po.po_date,
            supplier_id=po.supplier_id,
            supplier_name=po.supplier_name,
            supplier_code=po.supplier_code,
            invoice_number=data.invoice_number,
            invoice_date=data.invoice_date,
            received_date=data.received_date or date.today(),
            received_by=data.received_by,
            warehouse_location=data.warehouse_location,
            delivery_challan_number=data.delivery_challan_number,
            delivery_challan_date=data.delivery_challan_date,
            vehicle_number=data.vehicle_number,
            transporter_name=data.transporter_name,
            grn_type=data.grn_type,
            remarks=data.remarks,
            quality_check_remarks=data.quality_check_remarks,
            status=GRNStatus.DRAFT,
            items=items,
        ))
        return grn

    def _receipt_line(
        self,
        po_item: PurchaseOrderItem,
        line: Optional[GRNItemInput],
        warehouse_location: Optional[str],
    ) -> GRNItem:
        received = max(outstanding_quantity(po_item), Decimal("0"))
        if line and line.received_quantity is not None:
            received = line.received_quantity
        if line and line.accepted_quantity is not None:
            accepted = line.accepted_quantity
            rejected = line.rejected_quantity if line.rejected_quantity is not None else received - accepted
        elif line and line.rejected_quantity is not None:
            rejected = line.rejected_quantity
            accepted = received - rejected
        else:
            accepted, rejected = received, Decimal("0")

        return GRNItem(
            po_item_id=po_item.id,
            item_name=po_item.item_name,
            item_code=po_item.item_code,
            item_description=po_item.item_description,
            po_quantity=po_item.quantity,
            received_quantity=received,
            accepted_quantity=accepted,
            rejected_quantity=rejected,
            unit_of_measurement=po_item.unit_of_measurement,
            unit_price=po_item.unit_price,
            batch_number=line.batch_number if line else None,
            serial_number=line.serial_number if line else None,
            expiry_date=line.expiry_date if line else None,
            storage_location=(line.storage_location if line else None) or warehouse_location,
            bin_number=line.bin_number if line else None,
            quality_status=(line.quality_status if line else None) or QualityStatus.PENDING,
            quality_remarks=line.quality_remarks if line else None,
            remarks=line.remarks if line else None,
        )

    def _invoice_line_from_po(self, po_item: PurchaseOrderItem) -> InvoiceItem:
        return InvoiceItem(
            po_item_id=po_item.id,
            item_name=po_item.item_name,
            item_code=po_item.item_code,
            item_description=po_item.item_description,
            po_quantity=po_item.quantity,
            invoice_quantity=po_item.quantity,
            unit_of_measurement=po_item.unit_of_measurement,
            unit_price=po_item.unit_price,
            cgst_rate=po_item.tax1_rate if po_item.tax1_type == "CGST" else Decimal("0"),
            sgst_rate=po_item.tax2_rate if po_item.tax2_type == "SGST" else Decimal("0"),
        )

    def _invoice_line_from_grn(self, grn_item: GRNItem, po_item: Optional[PurchaseOrderItem]) -> InvoiceItem:
        """Bill what was accepted; tax rates come from the PO line when the PO is known"""
        return InvoiceItem(
            po_item_id=grn_item.po_item_id,
            grn_item_id=grn_item.id,
            item_name=grn_item.item_name,
            item_code=grn_item.item_code,
            item_description=grn_item.item_description,
            po_quantity=grn_item.po_quantity,
            grn_quantity=grn_item.accepted_quantity,
            invoice_quantity=grn_item.accepted_quantity,
            unit_of_measurement=grn_item.unit_of_measurement,
            unit_price=grn_item.unit_price,
            cgst_rate=po_item.tax1_rate if po_item and po_item.tax1_type == "CGST" else Decimal("0"),
            sgst_rate=po_item.tax2_rate if po_item and po_item.tax2_type == "SGST" else Decimal("0"),
        )

    def invoice_from_sources(
        self,
        data: InvoiceCreate,
        po: Optional[PurchaseOrder] = None,
        grn: Optional[GRN] = None,
    ) -> Invoice:
        """
        Build an invoice draft from its linked PO and/or GRN.

        Header fields (supplier, payment terms, addresses) come from the PO, or
        the GRN when there is no PO. Lines the caller supplied are kept as-is;
        otherwise GRN lines win over PO lines when both documents are linked.
        """
        po_items = {item.id: item for item in po.items} if po else {}

        if data.items:
            items = list(data.items)
        elif grn is not None:
            # Fully rejected lines have nothing to bill
            items = [
                self._invoice_line_from_grn(g, po_items.get(g.po_item_id))
                for g in grn.items
                if g.accepted_quantity > 0
            ]
        elif po is not None:
            items = [self._invoice_line_from_po(p) for p in po.items]
        else:
            items = []

        payment_terms = data.payment_terms or (po.payment_terms if po else None)
        invoice_date = data.invoice_date or date.today()

        invoice = Invoice(
            invoice_number=data.invoice_number,
            invoice_date=invoice_date,
            po_id=po.id if po else (grn.po_id if grn else data.po_id),
            po_number=po.po_number if po else (grn.po_number if grn else None),
            grn_id=grn.id if grn else data.grn_id,
            grn_number=grn.grn_number if grn else None,
            supplier_id=data.supplier_id or (po.supplier_id if po else (grn.supplier_id if grn else None)),
            supplier_name=data.supplier_name or (po.supplier_name if po else (grn.supplier_name if grn else None)),
            supplier_code=po.supplier_code if po else (grn.supplier_code if grn else None),
            supplier_invoice_number=data.supplier_invoice_number,
            supplier_invoice_date=data.supplier_invoice_date,
            invoice_type=data.invoice_type,
            status=InvoiceStatus.DRAFT,
            payment_terms=payment_terms,
            due_date=data.due_date or default_due_date(payment_terms, invoice_date),
            currency=data.currency,
            exchange_rate=data.exchange_rate,
            freight_charges=data.freight_charges,
            other_charges=data.other_charges,
            bill_to_address=po.bill_to_address if po else None,
            ship_to_address=po.ship_to_address if po else None,
            remarks=data.remarks,
            items=items,
        )
        return recalculate_invoice(invoice)
