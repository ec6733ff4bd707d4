"""
Scalar field extractors.

Each extractor is an ordered list of (pattern, confidence) strategies tried
from most specific to most generic. The first strategy that matches wins
and partial matches from different strategies are never merged, so the
list order IS the precedence policy for that field.
"""

import re
import logging
from decimal import Decimal, InvalidOperation
from typing import Callable, List, NamedTuple, Optional, Pattern, Sequence, Union

import dateutil.parser as date_parser

from .schemas import Confidence, ExtractedField, OrderContext, Row

logger = logging.getLogger(__name__)


class PatternStrategy(NamedTuple):
    pattern: Pattern
    confidence: Confidence
    group: int = 1


def _p(regex: str, confidence: Confidence, flags: int = re.I) -> PatternStrategy:
    return PatternStrategy(re.compile(regex, flags), confidence)


def empty_field() -> ExtractedField:
    return ExtractedField(value=None, source="fallback", confidence="low", tokens_matched=[])


def placeholder_field() -> ExtractedField:
    """Tag for pages with no text layer; the value is left for an OCR pass"""
    return ExtractedField(value=None, source="ocr_placeholder", confidence="low", tokens_matched=[])


class FieldExtractor:
    """
    Runs an ordered strategy list against raw page text

    The first strategy is the primary layout; anything after it is a
    fallback and is tagged as such in the result.
    """

    def __init__(self, name: str, strategies: Sequence[PatternStrategy],
                 normalize: Optional[Callable[[str], Optional[Union[str, float]]]] = None):
        self.name = name
        self.strategies = list(strategies)
        self.normalize = normalize

    def extract(self, text: str) -> ExtractedField:
        if not text:
            return empty_field()

        for index, strategy in enumerate(self.strategies):
            match = strategy.pattern.search(text)
            if not match:
                continue

            raw_value = match.group(strategy.group).strip()
            value = self.normalize(raw_value) if self.normalize else raw_value
            if value is None or value == "":
                # Normalizer rejected the capture; the next strategy gets a turn
                continue

            logger.debug(f"{self.name}: strategy {index} matched {match.group(0)!r}")
            return ExtractedField(
                value=value,
                source="primary" if index == 0 else "fallback",
                confidence=strategy.confidence,
                tokens_matched=[match.group(0).strip()],
            )

        return empty_field()


# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------

_NUMERIC_DATE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{2,4})$")


def normalize_date(raw: str) -> Optional[str]:
    """
    Normalize a captured date to YYYY-MM-DD

    Numeric day-first dates are reordered only when the trailing group is a
    four digit year; anything else is handed to dateutil (day-first).
    """
    match = _NUMERIC_DATE.match(raw)
    if match:
        day, month, year = match.groups()
        if len(year) == 4:
            return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
        return raw

    try:
        parsed = date_parser.parse(raw, dayfirst=True, fuzzy=True)
    except (ValueError, OverflowError, TypeError):
        return None
    return parsed.strftime('%Y-%m-%d')


def parse_money(raw: str) -> Optional[float]:
    """Parse an amount with thousands separators ('1,23,456.50' -> 123456.5)"""
    cleaned = raw.replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return float(Decimal(cleaned))
    except InvalidOperation:
        return None


# ---------------------------------------------------------------------------
# Extractor definitions
# ---------------------------------------------------------------------------

_CODE = r"([A-Z0-9][A-Z0-9\-/]*)"
_DATE = r"(\d{1,2}[-/]\d{1,2}[-/]\d{4})"
_TEXT_DATE = (
    r"(\d{1,2}\s+(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*,?\s+\d{4}"
    r"|(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\s+\d{1,2},?\s+\d{4})"
)
_CURRENCY = r"(?:₹|Rs\.?|INR)?"

INVOICE_NUMBER = FieldExtractor("invoice_number", [
    _p(r"Invoice\s*No\.?[:\s]+" + _CODE, "high"),
    _p(r"Invoice\s*Number[:\s]+" + _CODE, "high"),
    _p(r"Invoice[:\s]+([A-Z0-9\-/]{6,})", "medium"),
    _p(r"Tax\s*Invoice[:\s]+" + _CODE, "low"),
])

INVOICE_DATE = FieldExtractor("invoice_date", [
    _p(r"Invoice\s*Date[:\s]+" + _DATE, "high"),
    _p(r"Date[:\s]+" + _DATE, "medium"),
    _p(_DATE, "low"),
    _p(_TEXT_DATE, "low"),
], normalize=normalize_date)

ORDER_ID = FieldExtractor("order_id", [
    _p(r"\b(\d{3}-\d{7}-\d{7})\b", "high"),
    _p(r"\b(OD\d{15,})\b", "high"),
    _p(r"Order\s*(?:ID|No\.?|#)[:\s]+([A-Z0-9\-]{6,})", "medium"),
])

GSTIN = FieldExtractor("gstin", [
    _p(r"GSTIN[:\s]*([0-9A-Z]{15})\b", "high"),
    _p(r"\b(\d{2}[A-Z]{5}\d{4}[A-Z][0-9A-Z]{3})\b", "medium", flags=0),
])

TRACKING_ID = FieldExtractor("tracking_id", [
    _p(r"AWB\s*No\.?\s*\(N\)[:\s]+([A-Z0-9]+)", "high"),
    _p(r"AWB[:\s]+([A-Z0-9]{6,})", "medium"),
    _p(r"Tracking\s*(?:ID|No\.?)[:\s]+([A-Z0-9]{6,})", "medium"),
])

_QTY_LABELS = [
    re.compile(r"\bQty[:\s]*(\d+)\b", re.I),
    re.compile(r"\bQuantity[:\s]*(\d+)\b", re.I),
    re.compile(r"\b(\d+)\s+Units?\b", re.I),
]

_COD = re.compile(r"\bCOD\b|Cash\s+on\s+Delivery", re.I)


def extract_invoice_number(text: str) -> ExtractedField:
    return INVOICE_NUMBER.extract(text)


def extract_invoice_date(text: str) -> ExtractedField:
    return INVOICE_DATE.extract(text)


def extract_order_id(text: str) -> ExtractedField:
    return ORDER_ID.extract(text)


def extract_gstin(text: str) -> ExtractedField:
    return GSTIN.extract(text)


def extract_tracking_id(text: str) -> ExtractedField:
    return TRACKING_ID.extract(text)


def extract_payment_type(text: str) -> ExtractedField:
    """COD when the page says so; otherwise Prepaid, flagged as a guess"""
    match = _COD.search(text or "")
    if match:
        return ExtractedField(value="COD", source="primary", confidence="high",
                              tokens_matched=[match.group(0)])
    return ExtractedField(value="Prepaid", source="fallback", confidence="low", tokens_matched=[])


def extract_money(text: str, label: str) -> ExtractedField:
    """
    Extract a label-anchored amount

    Args:
        text: Raw page text
        label: Regex fragment for the label, e.g. r'Grand\\s*Total'
    """
    extractor = FieldExtractor(
        f"money:{label}",
        [_p(r"(?:" + label + r")[:\s]*" + _CURRENCY + r"\s*([0-9][0-9,]*(?:\.\d+)?)", "high")],
        normalize=parse_money,
    )
    return extractor.extract(text)


def extract_subtotal(text: str) -> ExtractedField:
    return extract_money(text, r"Sub\s*-?\s*total")


def extract_total_tax(text: str) -> ExtractedField:
    return extract_money(text, r"(?:Total\s*)?(?:GST|Tax)(?:\s*Amount)?")


def extract_grand_total(text: str) -> ExtractedField:
    return extract_money(text, r"Grand\s*Total|Total\s*Amount")


def extract_total_taxable_value(text: str) -> ExtractedField:
    return extract_money(text, r"Total\s*Taxable\s*Value")


def extract_quantity_label(text: str) -> Optional[int]:
    """Quantity from an explicit 'Qty:'/'Quantity:'/'N Units' label"""
    for pattern in _QTY_LABELS:
        match = pattern.search(text or "")
        if match:
            qty = int(match.group(1))
            if qty > 0:
                return qty
    return None


_ADDRESS_STOP = re.compile(r"Invoice|Date|GSTIN|Total|Subtotal", re.I)


def extract_multiline_address(rows: Sequence[Row], label_pattern: Union[str, Pattern],
                              max_lines: int = 5, delimiter: str = ", ") -> ExtractedField:
    """
    Collect an address block that follows a label row

    Text to the right of the label on the label row is kept; subsequent
    rows are collected until a stop row or `max_lines` rows.
    """
    if isinstance(label_pattern, str):
        label_pattern = re.compile(label_pattern, re.I)

    for index, row in enumerate(rows):
        row_text = row.text
        match = label_pattern.search(row_text)
        if not match:
            continue

        lines: List[str] = []
        remainder = row_text[match.end():].lstrip(" :-").strip()
        if remainder:
            lines.append(remainder)

        for following in rows[index + 1:index + 1 + max_lines]:
            line = following.text.strip()
            if _ADDRESS_STOP.search(line):
                break
            if line:
                lines.append(line)

        if not lines:
            return empty_field()

        return ExtractedField(
            value=delimiter.join(lines),
            source="primary",
            confidence="medium",
            tokens_matched=lines,
        )

    return empty_field()


def extract_order_context(raw_text: str) -> OrderContext:
    """Order-level fields a page's line items share"""
    return OrderContext(
        order_id=extract_order_id(raw_text),
        invoice_number=extract_invoice_number(raw_text),
        invoice_date=extract_invoice_date(raw_text),
        tracking_id=extract_tracking_id(raw_text),
        payment_type=extract_payment_type(raw_text),
    )
