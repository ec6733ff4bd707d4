"""
Invoice section parser.

Reads the tax-invoice half of a marketplace page: identifiers, parties,
totals and the item table. Every scalar comes back as an ExtractedField so a
missing grand total is distinguishable from a zero one.
"""

import re
import logging
from typing import Dict, List, Optional, Sequence

from .columns import assign_cells, cell_text, detect_columns
from .config import Settings, get_settings
from .fields import (
    extract_gstin, extract_grand_total, extract_invoice_date, extract_invoice_number,
    extract_multiline_address, extract_order_id, extract_subtotal, extract_total_tax,
    extract_total_taxable_value, parse_money,
)
from .schemas import ColumnKind, ColumnLayout, InvoiceFields, InvoiceItemRow, PositionedToken, Row
from .text_model import group_into_rows

logger = logging.getLogger(__name__)

INVOICE_KEYWORDS = [
    "tax invoice", "invoice no", "invoice", "bill to", "ship to",
    "gstin", "subtotal", "total", "grand total", "gst amount",
    "taxable value", "hsn",
]

ITEM_HEADER_SEARCH_DEPTH = 20

# Item table header: a description-like label and a quantity label on the same row
_ITEM_HEADER = re.compile(r"^(?=.*(?:description|product|item))(?=.*(?:qty|quantity))", re.I)
_ITEM_END = re.compile(r"sub\s*total|grand\s*total|tax\s*total|\btotal\b|terms|conditions", re.I)
_ITEM_SKIP = re.compile(r"\bsr\.?\s*no\b|\bs\.\s*no\b|^page\b|^continued", re.I)

_FIRST_INT = re.compile(r"\d+")
_AMOUNT = re.compile(r"\d[\d,]*(?:\.\d+)?")

_BILL_TO = re.compile(r"bill(?:ing)?\s*to", re.I)
_SHIP_TO = re.compile(r"ship(?:ping)?\s*to", re.I)

_ITEM_COLUMNS = [
    ColumnKind.DESCRIPTION, ColumnKind.PRODUCT, ColumnKind.HSN, ColumnKind.QTY,
    ColumnKind.RATE, ColumnKind.TAXABLE_VALUE, ColumnKind.GST_AMOUNT, ColumnKind.TOTAL,
]


def detect_invoice_labels(text: str) -> bool:
    """True when any invoice keyword appears in the page text"""
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in INVOICE_KEYWORDS)


def _cell_amount(cells: Dict[ColumnKind, List[PositionedToken]], kind: ColumnKind) -> Optional[float]:
    match = _AMOUNT.search(cell_text(cells, kind))
    return parse_money(match.group(0)) if match else None


def extract_item_rows(rows: Sequence[Row], layout: ColumnLayout) -> List[InvoiceItemRow]:
    """
    Read item rows between the table header and the totals block

    Args:
        rows: Page rows, top-to-bottom
        layout: Item table layout from detect_columns

    Returns:
        Rows carrying a description and a positive quantity, in page order
    """
    if not layout.has_header:
        return []

    columns = list(layout.columns)
    items: List[InvoiceItemRow] = []

    for index in range(layout.header_row_index + 1, len(rows)):
        row = rows[index]
        line_text = row.text.strip()

        if _ITEM_END.search(line_text):
            logger.debug(f"Item table ends at row {index}: {line_text!r}")
            break

        if not line_text or _ITEM_SKIP.search(line_text):
            continue

        cells = assign_cells(row, columns)
        description = cell_text(cells, ColumnKind.DESCRIPTION) or cell_text(cells, ColumnKind.PRODUCT)
        qty_match = _FIRST_INT.search(cell_text(cells, ColumnKind.QTY))
        qty = int(qty_match.group(0)) if qty_match else 0

        if not description or qty <= 0:
            continue

        items.append(InvoiceItemRow(
            description=description,
            hsn=cell_text(cells, ColumnKind.HSN) or None,
            qty=qty,
            rate=_cell_amount(cells, ColumnKind.RATE),
            taxable_value=_cell_amount(cells, ColumnKind.TAXABLE_VALUE),
            gst_amount=_cell_amount(cells, ColumnKind.GST_AMOUNT),
            line_total=_cell_amount(cells, ColumnKind.TOTAL),
            cell_tokens=[cell_text(cells, kind) for kind in _ITEM_COLUMNS if kind in cells],
        ))

    return items


def extract_invoice_fields(tokens: Sequence[PositionedToken], raw_text: str,
                           settings: Optional[Settings] = None) -> InvoiceFields:
    """
    Parse the invoice section of one page

    Args:
        tokens: Positioned tokens for the page
        raw_text: The page's concatenated text
        settings: Tunables (row tolerance, column padding, address depth)

    Returns:
        InvoiceFields with parsing notes describing anything missing
    """
    settings = settings or get_settings()
    notes: List[str] = []

    invoice_detected = detect_invoice_labels(raw_text)
    if not invoice_detected:
        notes.append("No invoice labels detected - may not be an invoice page")

    rows = group_into_rows(tokens, settings.y_tolerance)

    invoice_no = extract_invoice_number(raw_text)
    grand_total = extract_grand_total(raw_text)

    layout = detect_columns(
        rows,
        header_keywords=[_ITEM_HEADER],
        search_depth=ITEM_HEADER_SEARCH_DEPTH,
        left_pad=settings.column_left_pad,
        right_pad=settings.column_right_pad,
    )
    item_rows = extract_item_rows(rows, layout)

    if not layout.has_header:
        notes.append("No table header detected - item rows not extracted")
    if invoice_detected and not item_rows:
        notes.append("Warning: Invoice detected but no item rows extracted")
    if invoice_no.confidence == "low":
        notes.append("Low confidence in invoice number")
    if not grand_total.found:
        notes.append("Grand total not found")

    logger.info(f"Invoice section: {len(item_rows)} item row(s), invoice_no={invoice_no.value!r}")

    return InvoiceFields(
        invoice_no=invoice_no,
        invoice_date=extract_invoice_date(raw_text),
        order_id=extract_order_id(raw_text),
        gstin=extract_gstin(raw_text),
        bill_to=extract_multiline_address(rows, _BILL_TO, settings.address_max_lines),
        ship_to=extract_multiline_address(rows, _SHIP_TO, settings.address_max_lines),
        subtotal=extract_subtotal(raw_text),
        total_tax=extract_total_tax(raw_text),
        grand_total=grand_total,
        total_taxable_value=extract_total_taxable_value(raw_text),
        item_rows=item_rows,
        invoice_detected=invoice_detected,
        parsing_notes=notes,
    )
