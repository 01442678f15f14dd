"""
Purchase order numbers: PO/<financial year>/<sequence>, e.g. PO/2024-2025/001.

The financial year runs April to March by default.
"""
import re
from datetime import date
from typing import NamedTuple, Optional
from procuredesk.config import settings
from procuredesk.exceptions import DocumentValidationError

PO_NUMBER_PATTERN = re.compile(r"^(?P<prefix>[A-Z]+)/(?P<start>\d{4})-(?P<end>\d{4})/(?P<sequence>\d+)$")


class DocumentNumber(NamedTuple):
    prefix: str
    financial_year: str
    sequence: int


def financial_year(on: Optional[date] = None, start_month: Optional[int] = None) -> str:
    """Financial year label containing the given date, e.g. 2024-2025 for 2025-01-15"""
    on = on or date.today()
    start_month = start_month or settings.financial_year_start_month
    first_year = on.year if on.month >= start_month else on.year - 1
    return f"{first_year}-{first_year + 1}"


def format_po_number(sequence: int, on: Optional[date] = None) -> str:
    if sequence < 1:
        raise DocumentValidationError("PO sequence must be positive")
    padded = str(sequence).zfill(settings.po_number_padding)
    return f"{settings.po_number_prefix}/{financial_year(on)}/{padded}"


def parse_po_number(po_number: str) -> DocumentNumber:
    """
    Raises:
        DocumentValidationError if the number is not PREFIX/YYYY-YYYY/NNN
        or the two years are not consecutive
    """
    match = PO_NUMBER_PATTERN.match((po_number or "").strip())
    if not match:
        raise DocumentValidationError(
            f"PO number '{po_number}' must look like {settings.po_number_prefix}/2024-2025/001"
        )
    start, end = int(match.group("start")), int(match.group("end"))
    if end != start + 1:
        raise DocumentValidationError(f"PO number '{po_number}' has an invalid financial year")
    return DocumentNumber(match.group("prefix"), f"{start}-{end}", int(match.group("sequence")))


def is_valid_po_number(po_number: str) -> bool:
    try:
        parse_po_number(po_number)
    except DocumentValidationError:
        return False
    return True
