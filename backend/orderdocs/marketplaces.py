"""
Marketplace-specific helpers

Amazon invoices carry no reliable SKU column, so their items are keyed on
the ASIN and matched to the closest seller SKU in the page text.
Myntra picklists are a strict table anchored on the Seller SKU header.
"""

import re
import logging
from enum import Enum
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .config import Settings, get_settings
from .fields import extract_quantity_label
from .line_items import UNKNOWN_PRODUCT, QuantityResolver
from .schemas import LineItem, LineItemExtraction, PageText, PositionedToken, RejectedCandidate, Row
from .text_model import group_into_rows

logger = logging.getLogger(__name__)


class Marketplace(str, Enum):
    FLIPKART = "flipkart"
    AMAZON = "amazon"
    MYNTRA = "myntra"
    GENERIC = "generic"


ASIN_PATTERN = re.compile(r"\bB0[A-Z0-9]{8}\b")
AMAZON_ORDER_ID = re.compile(r"\b(\d{3}-\d{7}-\d{7})\b")

_PAREN_SKU = re.compile(r"\(\s*([A-Z0-9][A-Z0-9\-_]{4,})\s*\)", re.I)
_STANDALONE_SKU = re.compile(r"\b([A-Z][A-Z0-9\-_]{5,})\b")
_COMMON_WORDS = {"INVOICE", "NUMBER", "ORDER", "TOTAL", "CUSTOMER"}
_QTY_WORD = re.compile(r"Qty|Quantity", re.I)

SKU_ASIN_MAX_DISTANCE = 100


class SkuMatch(NamedTuple):
    sku: str
    index: int


def detect_page_type(text: str) -> str:
    """Classify a page as 'invoice', 'label' or 'unknown' from fixed markers"""
    if any(marker in text for marker in ("Tax Invoice", "Invoice Number", "Sl. No")):
        return "invoice"
    if any(marker in text for marker in ("AWB", "BOX", "Ship To:")):
        return "label"
    return "unknown"


def find_asins(text: str) -> List[str]:
    """Unique ASINs in order of first appearance"""
    seen: List[str] = []
    for asin in ASIN_PATTERN.findall(text or ""):
        if asin not in seen:
            seen.append(asin)
    return seen


def find_seller_skus(text: str) -> List[SkuMatch]:
    """
    Seller SKU candidates with their character offsets

    Parenthesised SKUs come first, then standalone upper-case tokens that
    are neither common invoice words nor ASINs.
    """
    results = [SkuMatch(m.group(1).strip(), m.start()) for m in _PAREN_SKU.finditer(text or "")]

    for match in _STANDALONE_SKU.finditer(text or ""):
        sku = match.group(1).strip()
        if sku in _COMMON_WORDS or ASIN_PATTERN.fullmatch(sku):
            continue
        results.append(SkuMatch(sku, match.start()))

    return results


def extract_context_around_index(text: str, index: int, words_before: int = 8, words_after: int = 8) -> str:
    """The words surrounding a character offset, joined by single spaces"""
    words = text.split()
    if not words:
        return ""

    # Word whose start offset is closest to `index`
    best, best_distance = 0, None
    position = text.find(words[0])
    for word_index, word in enumerate(words):
        position = text.find(word, position)
        distance = abs(position - index)
        if best_distance is None or distance < best_distance:
            best, best_distance = word_index, distance
        position += len(word)

    start = max(0, best - words_before)
    return " ".join(words[start:best + words_after + 1])


def needs_ocr(text: str) -> bool:
    """True when a page has no ASIN, no SKU candidate and no quantity label"""
    return not find_asins(text) and not find_seller_skus(text) and not _QTY_WORD.search(text or "")


def _row_containing(rows: List[Row], needle: str) -> Optional[Row]:
    for row in rows:
        if any(needle in token.text for token in row.tokens):
            return row
    return None


def _nearest_seller_sku(asin_index: int, candidates: List[SkuMatch]) -> Optional[str]:
    for candidate in candidates:
        if abs(candidate.index - asin_index) < SKU_ASIN_MAX_DISTANCE:
            return candidate.sku
    return None


def _resolve_quantity(rows: List[Row], resolver: Optional[QuantityResolver],
                      asin: str, context: str) -> Tuple[int, str]:
    row = _row_containing(rows, asin) if rows else None
    if row is not None and resolver is not None:
        quantity, source, _ = resolver.resolve(row, {}, has_qty_column=False)
        return quantity, source

    labelled = extract_quantity_label(context)
    if labelled is not None:
        return labelled, "label"
    return 1, "guessed"


def parse_amazon_invoice_page(page: PageText, settings: Optional[Settings] = None) -> List[LineItem]:
    """
    Extract ASIN-keyed line items from an Amazon invoice page

    Args:
        page: Text layer output for the page
        settings: Row tolerance and quantity clustering tolerance

    Returns:
        One LineItem per distinct ASIN; empty when the page has no Amazon order id
    """
    settings = settings or get_settings()
    raw_text = page.raw_text or ""

    if not AMAZON_ORDER_ID.search(raw_text):
        logger.warning(f"No order ID found on invoice page {page.page_number}")
        return []

    asins = find_asins(raw_text)
    skus = find_seller_skus(raw_text)
    logger.info(f"Page {page.page_number}: {len(asins)} ASIN(s), {len(skus)} seller SKU candidate(s)")

    rows = group_into_rows(page.tokens, settings.y_tolerance)
    resolver = QuantityResolver(rows, settings.qty_cluster_tolerance) if rows else None

    items: List[LineItem] = []
    for asin in asins:
        asin_index = raw_text.index(asin)
        context = extract_context_around_index(raw_text, asin_index, 10, 10)

        seller_sku = _nearest_seller_sku(asin_index, skus)
        if seller_sku is None:
            logger.warning(f"No seller SKU found for ASIN {asin}, using ASIN as fallback")

        quantity, qty_source = _resolve_quantity(rows, resolver, asin, context)

        name_match = re.match(r"^(.+?)\s+B0[A-Z0-9]{8}", context)
        items.append(LineItem(
            sku=(seller_sku or asin).upper(),
            quantity=quantity,
            product_name=name_match.group(1).strip() if name_match else UNKNOWN_PRODUCT,
            raw_line=context,
            qty_source=qty_source,
            sku_valid=seller_sku is not None,
            extraction_source="asin_context",
            asin=asin,
        ))

    return items


# ---------------------------------------------------------------------------
# Myntra picklists
# ---------------------------------------------------------------------------

MYNTRA_HEADER_ANCHORS = ("seller sku code", "seller sku")
MYNTRA_SELLER_SKU = re.compile(r"^[A-Z0-9\-]{6,}$")
HEADER_WORD_GAP = 6
HEADER_EDGE_PAD = 20

_CODE_NOISE = re.compile(r"[\s|,]+")
_DIGITS = re.compile(r"\d+")


class PicklistColumn(NamedTuple):
    header: str
    x: float
    min_x: float
    max_x: float

    def contains(self, token: PositionedToken) -> bool:
        return self.min_x <= token.x <= self.max_x


def merge_header_phrases(row: Row, max_gap: float = HEADER_WORD_GAP) -> List[PositionedToken]:
    """Join header words closer than `max_gap` into one phrase ('Seller' 'SKU' 'Code')"""
    phrases: List[PositionedToken] = []
    for token in row.tokens:
        if phrases:
            last = phrases[-1]
            if token.x - (last.x + last.width) <= max_gap:
                phrases[-1] = PositionedToken(
                    text=f"{last.text} {token.text}",
                    x=last.x,
                    y=last.y,
                    width=token.x + token.width - last.x,
                    height=max(last.height, token.height),
                )
                continue
        phrases.append(token)
    return phrases


def picklist_columns(header: Sequence[PositionedToken], edge_pad: float = HEADER_EDGE_PAD) -> List[PicklistColumn]:
    """
    Column ranges bounded by the midpoints between neighbouring header phrases

    The first column starts `edge_pad` left of its header, the last ends
    `edge_pad` right of its header's right edge.
    """
    ordered = sorted(header, key=lambda t: t.x)
    columns: List[PicklistColumn] = []
    for index, token in enumerate(ordered):
        previous = ordered[index - 1] if index > 0 else None
        following = ordered[index + 1] if index + 1 < len(ordered) else None
        min_x = (previous.x + token.x) / 2 if previous is not None else token.x - edge_pad
        max_x = (token.x + following.x) / 2 if following is not None else token.x + token.width + edge_pad
        columns.append(PicklistColumn(token.text.lower(), token.x, min_x, max_x))
    return columns


def _first_column(columns: List[PicklistColumn], *required: str) -> Optional[PicklistColumn]:
    for column in columns:
        if all(word in column.header for word in required):
            return column
    return None


def _cell_tokens(record: List[Row], column: Optional[PicklistColumn]) -> List[PositionedToken]:
    if column is None:
        return []
    return [token for row in record for token in row.tokens if column.contains(token)]


def assemble_code_cell(tokens: Sequence[PositionedToken]) -> str:
    """Concatenate a wrapped code cell without separators: 'LGO-TP2023-' + 'BLK-L'"""
    return _CODE_NOISE.sub("", "".join(token.text for token in tokens)).upper()


def _group_records(rows: List[Row], anchors: List[PicklistColumn], wrap_tolerance: float) -> List[List[Row]]:
    """
    Group data rows into picklist records

    A row with a token in an anchor column (Myntra SKU or quantity) opens a
    record; rows without one that sit within `wrap_tolerance` below the
    previous row are wrapped cell content of the open record.
    """
    records: List[List[Row]] = []
    for row in rows:
        opens = not anchors or any(column.contains(token) for column in anchors for token in row.tokens)
        if opens:
            records.append([row])
        elif records and records[-1][-1].y - row.y <= wrap_tolerance:
            records[-1].append(row)
    return records


def parse_myntra_picklist_page(page: PageText, settings: Optional[Settings] = None) -> LineItemExtraction:
    """
    Extract line items from a Myntra picklist page

    The table is anchored on its 'Seller SKU' header. Cells are read strictly
    from their own column, wrapped SKU cells are reassembled, and the seller
    SKU must look like a code (6+ upper-case letters, digits or hyphens).

    Args:
        page: Text layer output for the page
        settings: Row grouping and wrap tolerances

    Returns:
        LineItemExtraction; empty with a note when no Seller SKU header exists
    """
    settings = settings or get_settings()
    rows = group_into_rows(page.tokens, settings.myntra_y_tolerance)

    header_index = next(
        (i for i, row in enumerate(rows) if any(a in row.text.lower() for a in MYNTRA_HEADER_ANCHORS)),
        -1,
    )
    if header_index == -1:
        logger.warning(f"Page {page.page_number}: no header row with a Seller SKU column")
        return LineItemExtraction(notes=["No Seller SKU header found on picklist page"])

    columns = picklist_columns(merge_header_phrases(rows[header_index]))
    myntra_column = _first_column(columns, "myntra", "sku")
    seller_column = _first_column(columns, "seller sku")
    qty_column = _first_column(columns, "qty") or _first_column(columns, "quantity")
    description_column = _first_column(columns, "product", "description")

    anchors = [column for column in (myntra_column, qty_column) if column is not None]
    records = _group_records(rows[header_index + 1:], anchors, settings.myntra_wrap_tolerance)

    items: List[LineItem] = []
    rejected: List[RejectedCandidate] = []
    for record in records:
        raw_line = " ".join(row.text for row in record)
        row_index = rows.index(record[0])

        myntra_sku = assemble_code_cell(_cell_tokens(record, myntra_column))
        seller_candidate = assemble_code_cell(_cell_tokens(record, seller_column))
        seller_sku = seller_candidate if MYNTRA_SELLER_SKU.match(seller_candidate) else ""
        if seller_candidate and not seller_sku:
            rejected.append(RejectedCandidate(
                sku=seller_candidate, reason="pattern_mismatch", row_index=row_index,
                raw_line=raw_line, sku_cell_text=seller_candidate,
            ))

        if not seller_sku and not myntra_sku:
            logger.debug(f"Row {row_index}: no SKU in picklist record, skipped")
            continue

        qty_text = assemble_code_cell(_cell_tokens(record, qty_column))
        digits = _DIGITS.search(qty_text)
        quantity, qty_source = 1, "guessed"
        if digits and int(digits.group()) > 0:
            quantity, qty_source = int(digits.group()), "column"

        description = " ".join(t.text for t in _cell_tokens(record, description_column))

        items.append(LineItem(
            sku=seller_sku or myntra_sku,
            quantity=quantity,
            product_name=" ".join(description.split()) or raw_line,
            raw_line=raw_line,
            qty_source=qty_source,
            sku_valid=bool(seller_sku),
            matched_pattern=MYNTRA_SELLER_SKU.pattern if seller_sku else None,
            row_index=row_index,
            sku_cell_text=seller_candidate,
            qty_cell_text=qty_text,
            extraction_source="picklist_column",
            myntra_sku=myntra_sku or None,
        ))

    logger.info(f"Page {page.page_number}: {len(items)} picklist item(s), {len(rejected)} rejected")
    notes = [] if items else ["No picklist rows found below the Seller SKU header"]
    return LineItemExtraction(items=items, rejected=rejected, notes=notes)
