"""
Column/header detection over grouped rows.

The header row anchors every column: each recognised header glyph yields an
x-range that starts slightly left of the glyph and extends well past its
right edge so wrapped or overflowing cell text still lands in the column.
"""

import re
import logging
from typing import Dict, List, Optional, Pattern, Sequence, Tuple, Union

from .schemas import ColumnKind, ColumnLayout, ColumnRange, PositionedToken, Row

logger = logging.getLogger(__name__)

DEFAULT_HEADER_KEYWORDS = ["sku", "product", "description", "qty", "quantity", "amount"]

# Precedence matters: a token is classified by the first rule it satisfies
_COLUMN_RULES: List[Tuple[ColumnKind, Pattern, Optional[Pattern], Optional[Pattern]]] = [
    # (kind, must match, must also match, must not match)
    (ColumnKind.SKU, re.compile(r"sku", re.I), None, None),
    (ColumnKind.QTY, re.compile(r"qty|quantity", re.I), None, None),
    (ColumnKind.HSN, re.compile(r"hsn", re.I), None, None),
    (ColumnKind.TAXABLE_VALUE, re.compile(r"taxable", re.I), None, None),
    (ColumnKind.GST_AMOUNT, re.compile(r"gst|tax", re.I), re.compile(r"amount|value", re.I), None),
    (ColumnKind.RATE, re.compile(r"rate|price|unit", re.I), None, re.compile(r"gst", re.I)),
    (ColumnKind.DESCRIPTION, re.compile(r"description", re.I), None, None),
    (ColumnKind.PRODUCT, re.compile(r"product|item", re.I), None, None),
    (ColumnKind.TOTAL, re.compile(r"total|amount", re.I), None, None),
]


def classify_header_token(text: str) -> Optional[ColumnKind]:
    """Map one header glyph to a column kind, or None when it names no known column"""
    for kind, pattern, also, exclude in _COLUMN_RULES:
        if not pattern.search(text):
            continue
        if also is not None and not also.search(text):
            continue
        if exclude is not None and exclude.search(text):
            continue
        return kind
    return None


def _row_has_keyword(row_text: str, header_keywords: Sequence[Union[str, Pattern]]) -> bool:
    lowered = row_text.lower()
    for keyword in header_keywords:
        if isinstance(keyword, str):
            if keyword.lower() in lowered:
                return True
        elif keyword.search(row_text):
            return True
    return False


def detect_columns(
    rows: Sequence[Row],
    header_keywords: Sequence[Union[str, Pattern]] = DEFAULT_HEADER_KEYWORDS,
    search_depth: int = 15,
    left_pad: float = 20,
    right_pad: float = 100,
) -> ColumnLayout:
    """
    Find the header row and compute x-ranges per logical column

    Args:
        rows: Rows for one page, top-to-bottom
        header_keywords: Case-insensitive substrings or compiled regexes
        search_depth: How many leading rows to scan
        left_pad: Extension of each range left of the header glyph
        right_pad: Extension past the glyph's right edge

    Returns:
        ColumnLayout; header_row_index is -1 with no columns when nothing matched
    """
    for index, row in enumerate(rows[:search_depth]):
        if not _row_has_keyword(row.text, header_keywords):
            continue

        columns: List[ColumnRange] = []
        for token in row.tokens:
            kind = classify_header_token(token.text)
            if kind is None:
                continue
            columns.append(ColumnRange(
                name=kind,
                min_x=token.x - left_pad,
                max_x=token.x + token.width + right_pad,
            ))
            logger.debug(f"{kind.value} column range: {token.x - left_pad} - {token.x + token.width + right_pad}")

        logger.info(f"Found header row at line {index}: {row.text!r} ({len(columns)} columns)")
        return ColumnLayout(header_row_index=index, header_text=row.text, columns=columns)

    logger.info(f"No header row in the first {search_depth} rows")
    return ColumnLayout()


def assign_cells(row: Row, columns: Sequence[ColumnRange]) -> Dict[ColumnKind, List[PositionedToken]]:
    """
    Assign each token of a row to the first column range containing its x

    Ranges may overlap; they are not de-overlapped, the earlier header wins.
    Tokens outside every range are dropped.
    """
    cells: Dict[ColumnKind, List[PositionedToken]] = {}
    for token in row.tokens:
        for column in columns:
            if column.contains(token):
                cells.setdefault(column.name, []).append(token)
                break
    return cells


def cell_text(cells: Dict[ColumnKind, List[PositionedToken]], kind: ColumnKind, sep: str = " ") -> str:
    return sep.join(t.text for t in cells.get(kind, [])).strip()
