"""
Positional text model: groups raw page tokens into visual rows and columns.

Grouping is a greedy first-match pass, not a clustering algorithm. A token
joins the FIRST row whose representative y (the y of the token that opened
the row) lies within the tolerance, even when a later row would be closer.
Marketplace templates were tuned against exactly this behaviour, so the
tolerance is the only knob.
"""

import logging
from typing import Iterable, List, Sequence

from .schemas import PositionedToken, Row

logger = logging.getLogger(__name__)


def group_into_rows(tokens: Iterable[PositionedToken], y_tolerance: float = 5) -> List[Row]:
    """
    Group tokens into rows based on vertical proximity

    Args:
        tokens: Unordered tokens for one page
        y_tolerance: Max distance from a row's representative y

    Returns:
        Rows top-to-bottom, tokens inside each row left-to-right
    """
    # Top to bottom first so row representatives are deterministic
    ordered = sorted(tokens, key=lambda t: (-t.y, t.x))
    if not ordered:
        return []

    buckets: List[List[PositionedToken]] = []
    for token in ordered:
        for bucket in buckets:
            if abs(bucket[0].y - token.y) <= y_tolerance:
                bucket.append(token)
                break
        else:
            buckets.append([token])

    buckets.sort(key=lambda b: -b[0].y)
    rows = [
        Row(y=bucket[0].y, tokens=sorted(bucket, key=lambda t: t.x))
        for bucket in buckets
    ]
    logger.debug(f"Grouped {len(ordered)} tokens into {len(rows)} rows")
    return rows


def group_into_columns(tokens: Iterable[PositionedToken], x_tolerance: float = 20) -> List[List[PositionedToken]]:
    """
    Group tokens into columns based on horizontal proximity (same greedy rule as rows)

    Returns:
        Columns left-to-right, tokens inside each column top-to-bottom
    """
    ordered = sorted(tokens, key=lambda t: (t.x, -t.y))
    columns: List[List[PositionedToken]] = []

    for token in ordered:
        for column in columns:
            if abs(column[0].x - token.x) <= x_tolerance:
                column.append(token)
                break
        else:
            columns.append([token])

    return [sorted(column, key=lambda t: -t.y) for column in columns]


def tokens_in_range(tokens: Sequence[PositionedToken], min_x: float, max_x: float) -> List[PositionedToken]:
    """Tokens whose left edge falls inside [min_x, max_x]"""
    return [t for t in tokens if min_x <= t.x <= max_x]


def join_text(tokens: Sequence[PositionedToken], sep: str = " ") -> str:
    return sep.join(t.text for t in tokens).strip()


def page_text(rows: Sequence[Row]) -> str:
    """Rebuild a page's text in reading order, one row per line"""
    return "\n".join(row.text for row in rows)
