"""
Row/line-item extraction

Walks the data rows below a detected header, pulls SKU candidates out of
the SKU column (or sweeps the row text when no SKU column exists),
validates them strictly and resolves a quantity for every accepted SKU.
Rejected candidates are kept with a reason code for QA review.
"""

import re
import logging
from typing import Dict, List, NamedTuple, Optional, Pattern, Sequence, Tuple, Union

import numpy as np

from .columns import assign_cells, cell_text
from .config import Settings, get_settings
from .fields import extract_quantity_label
from .schemas import (
    ColumnKind, ColumnLayout, ColumnRange, LineItem, LineItemExtraction,
    PositionedToken, RejectedCandidate, Row,
)

logger = logging.getLogger(__name__)

STOP_PATTERN = re.compile(r"TAX\s+INVOICE|INVOICE\s+DETAILS|Invoice\s+Date|Billing\s+Address", re.I)
SKIP_PATTERN = re.compile(r"SKU\s*ID|Handling\s+Fee|TOTAL|Shipped\s+by|IMEI|Sr\.?\s*No", re.I)
SKU_SWEEP_PATTERN = re.compile(r"[A-Z]{3,}(?:-[A-Z0-9]+){2,}")

UNKNOWN_PRODUCT = "Unknown Product"

_SMALL_INT = re.compile(r"^\d{1,2}$")
_FIRST_INT = re.compile(r"\b(\d+)\b")
_NAME_NOISE = [
    re.compile(r"Qty[:\s]*\d+", re.I),
    re.compile(r"Quantity[:\s]*\d+", re.I),
    re.compile(r"\b\d+\b"),
]


class SkuVerdict(NamedTuple):
    accepted: bool
    reason: Optional[str] = None
    matched_pattern: Optional[str] = None


class SkuValidator:
    """
    Strict SKU shape check, no fuzzy acceptance

    Order: blacklisted substring, then at least one digit, then at least one
    vendor pattern. The verdict depends only on the candidate string.
    """

    def __init__(self, blacklist: Sequence[str], patterns: Sequence[Union[str, Pattern]]):
        self.blacklist = [token.upper() for token in blacklist if token]
        self.patterns = [re.compile(p, re.I) if isinstance(p, str) else p for p in patterns]

    @classmethod
    def from_settings(cls, settings: Settings) -> "SkuValidator":
        return cls(settings.sku_blacklist, settings.sku_patterns)

    @staticmethod
    def normalize(candidate: str) -> str:
        return re.sub(r"\s+", "", candidate).upper()

    def validate(self, candidate: str) -> SkuVerdict:
        sku = self.normalize(candidate)

        if any(token in sku for token in self.blacklist):
            return SkuVerdict(False, "blacklisted")

        if not re.search(r"\d", sku):
            return SkuVerdict(False, "no_digits")

        for pattern in self.patterns:
            if pattern.search(sku):
                return SkuVerdict(True, None, pattern.pattern)

        return SkuVerdict(False, "pattern_mismatch")


class QuantityResolver:
    """
    Resolves a row's quantity: QTY column, explicit label, densest
    small-integer x-cluster on the page, then a guessed 1.
    """

    def __init__(self, rows: Sequence[Row], cluster_tolerance: float = 20):
        self.cluster_tolerance = cluster_tolerance
        self._qty_cluster = self._largest_small_int_cluster(rows)

    def _largest_small_int_cluster(self, rows: Sequence[Row]) -> Dict[int, int]:
        """
        Greedy x-clustering of every 1..99 integer token on the page

        Returns:
            id(token) -> value for the members of the largest cluster
        """
        anchors: List[float] = []
        clusters: List[List[Tuple[PositionedToken, int]]] = []

        for row in rows:
            for token in row.tokens:
                text = token.text.strip()
                if not _SMALL_INT.match(text):
                    continue
                value = int(text)
                if not 0 < value < 100:
                    continue

                hits = np.flatnonzero(np.abs(np.asarray(anchors, dtype=float) - token.x) <= self.cluster_tolerance)
                if hits.size:
                    clusters[int(hits[0])].append((token, value))
                else:
                    anchors.append(token.x)
                    clusters.append([(token, value)])

        if not clusters:
            return {}

        # max() keeps the first cluster on ties
        largest = max(clusters, key=len)
        logger.debug(f"Qty cluster at x~{largest[0][0].x} with {len(largest)} member(s)")
        return {id(token): value for token, value in largest}

    def resolve(self, row: Row, cells: Dict[ColumnKind, List[PositionedToken]],
                has_qty_column: bool) -> Tuple[int, str, str]:
        """
        Returns:
            (quantity, qty_source, qty_cell_text)
        """
        if has_qty_column:
            qty_text = cell_text(cells, ColumnKind.QTY)
            match = _FIRST_INT.search(qty_text)
            if match and int(match.group(1)) > 0:
                return int(match.group(1)), "column", qty_text

        labelled = extract_quantity_label(row.text)
        if labelled is not None:
            return labelled, "label", str(labelled)

        for token in row.tokens:
            if id(token) in self._qty_cluster:
                value = self._qty_cluster[id(token)]
                return value, "proximity", token.text

        return 1, "guessed", ""


def derive_product_name(row_text: str, strip: Sequence[str]) -> str:
    """Row text minus the SKU text, quantity labels and bare integers"""
    name = row_text
    for fragment in strip:
        if fragment:
            name = re.sub(re.escape(fragment), " ", name, count=1, flags=re.I)
    for pattern in _NAME_NOISE:
        name = pattern.sub(" ", name)
    name = re.sub(r"\s+", " ", name).strip()
    return name or UNKNOWN_PRODUCT


class LineItemExtractor:
    """
    Row scanner producing validated line items for one page
    """

    def __init__(self, settings: Optional[Settings] = None, validator: Optional[SkuValidator] = None):
        self.settings = settings or get_settings()
        self.validator = validator or SkuValidator.from_settings(self.settings)

    def _sku_candidates(self, row: Row, cells: Dict[ColumnKind, List[PositionedToken]],
                        sku_column: Optional[ColumnRange]) -> Tuple[List[str], str, List[str]]:
        """
        Returns:
            (candidate tokens, sku cell text, fragments to strip from the product name)
        """
        if sku_column is not None:
            sku_tokens = cells.get(ColumnKind.SKU, [])
            # Concatenate so a SKU wrapped across glyph runs is rebuilt
            cell = "".join(t.text for t in sku_tokens).strip()
            return cell.split(), cell, [t.text for t in sku_tokens]

        matches = SKU_SWEEP_PATTERN.findall(row.text)
        return matches, " ".join(matches), list(matches)

    def extract(self, rows: Sequence[Row], layout: Union[ColumnLayout, Sequence[ColumnRange]],
                header_row_index: Optional[int] = None) -> LineItemExtraction:
        """
        Extract validated line items from a page's rows

        Args:
            rows: Rows for the page, top-to-bottom
            layout: Detected ColumnLayout, or a bare list of ColumnRange
            header_row_index: Overrides the layout's header index

        Returns:
            LineItemExtraction with items in row-scan order, rejections and notes
        """
        if isinstance(layout, ColumnLayout):
            columns = list(layout.columns)
            if header_row_index is None:
                header_row_index = layout.header_row_index
        else:
            columns = list(layout)
        if header_row_index is None:
            header_row_index = -1

        items: List[LineItem] = []
        rejected: List[RejectedCandidate] = []
        notes: List[str] = []

        if not rows:
            notes.append("Empty page - no text rows")
            return LineItemExtraction(items=items, rejected=rejected, notes=notes)

        sku_column = next((c for c in columns if c.name == ColumnKind.SKU), None)
        has_qty_column = any(c.name == ColumnKind.QTY for c in columns)
        source = "column" if sku_column is not None else "fallback_regex"

        if header_row_index < 0:
            notes.append("No header detected - heuristic fallback used")
        elif sku_column is None:
            notes.append("No SKU column detected - regex sweep over row text used")

        quantities = QuantityResolver(rows, self.settings.qty_cluster_tolerance)
        start = header_row_index + 1 if header_row_index >= 0 else 0

        for index in range(start, len(rows)):
            row = rows[index]
            line_text = row.text.strip()
            if not line_text:
                continue

            if STOP_PATTERN.search(line_text):
                logger.info(f"Row {index}: reached invoice section - stopping")
                break

            if SKIP_PATTERN.search(line_text):
                continue

            cells = assign_cells(row, columns)
            candidates, sku_cell, strip = self._sku_candidates(row, cells, sku_column)
            if not candidates:
                continue

            for raw in candidates:
                sku = SkuValidator.normalize(raw)
                verdict = self.validator.validate(sku)
                if not verdict.accepted:
                    logger.info(f"Row {index}: ❌ SKU {sku!r} rejected ({verdict.reason})")
                    rejected.append(RejectedCandidate(
                        sku=sku,
                        reason=verdict.reason,
                        row_index=index,
                        raw_line=line_text,
                        sku_cell_text=sku_cell,
                    ))
                    continue

                quantity, qty_source, qty_cell = quantities.resolve(row, cells, has_qty_column)
                product_name = derive_product_name(line_text, list(strip) + [sku])

                logger.info(f"Row {index}: ✅ valid SKU {sku!r} qty={quantity} ({qty_source})")
                items.append(LineItem(
                    sku=sku,
                    quantity=quantity,
                    product_name=product_name,
                    raw_line=line_text,
                    qty_source=qty_source,
                    sku_valid=True,
                    matched_pattern=verdict.matched_pattern,
                    row_index=index,
                    sku_cell_text=sku_cell,
                    qty_cell_text=qty_cell,
                    extraction_source=source,
                ))

        if not items:
            notes.append("No valid SKU rows found on page")
        return LineItemExtraction(items=items, rejected=rejected, notes=notes)


def extract_line_items(rows: Sequence[Row], columns: Sequence[ColumnRange],
                       blacklist_tokens: Optional[Sequence[str]] = None,
                       header_row_index: int = -1,
                       settings: Optional[Settings] = None) -> List[LineItem]:
    """Convenience wrapper returning only the accepted line items"""
    settings = settings or get_settings()
    blacklist = settings.sku_blacklist if blacklist_tokens is None else blacklist_tokens
    extractor = LineItemExtractor(settings, SkuValidator(blacklist, settings.sku_patterns))
    return extractor.extract(rows, columns, header_row_index).items
