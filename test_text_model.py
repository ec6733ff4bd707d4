"""
Tests for row/column grouping of positioned tokens
"""

from orderdocs.schemas import PositionedToken
from orderdocs.text_model import group_into_columns, group_into_rows, page_text, tokens_in_range


def tok(text, x, y, width=0.0):
    return PositionedToken(text=text, x=x, y=y, width=width)


# Three tokens 4 units apart: the middle one is within tolerance of both
# neighbours, but the bottom one is 8 away from the row's first token
mock_tokens_chain = [
    tok('bottom', 10, 0),
    tok('top', 10, 8),
    tok('middle', 10, 4),
]

mock_tokens_page = [
    tok('QTY', 400, 760),
    tok('SKU', 50, 760),
    tok('Description', 200, 761),
    tok('2', 400, 740),
    tok('LANGO-TP2024-BLK-L', 50, 741),
    tok('Cotton Track Pants', 200, 739),
]


def test_greedy_first_match_rows():
    """Rows are anchored on the first token, not chained"""
    rows = group_into_rows(mock_tokens_chain, y_tolerance=5)

    assert len(rows) == 2, f"Expected 2 rows, got {len(rows)}"
    assert [t.text for t in rows[0].tokens] == ['top', 'middle']
    assert [t.text for t in rows[1].tokens] == ['bottom']
    assert rows[0].y == 8, "Row y must be its first token's y"
    assert rows[1].y == 0


def test_tolerance_is_inclusive():
    rows = group_into_rows([tok('a', 0, 10), tok('b', 5, 5)], y_tolerance=5)
    assert len(rows) == 1


def test_rows_top_to_bottom_left_to_right():
    rows = group_into_rows(mock_tokens_page)

    assert len(rows) == 2
    assert rows[0].text == 'SKU Description QTY'
    assert rows[1].text == 'LANGO-TP2024-BLK-L Cotton Track Pants 2'


def test_every_token_in_exactly_one_row():
    rows = group_into_rows(mock_tokens_page)
    texts = sorted(t.text for row in rows for t in row.tokens)
    assert texts == sorted(t.text for t in mock_tokens_page)


def test_grouping_is_idempotent():
    first = group_into_rows(mock_tokens_page)
    second = group_into_rows(list(reversed(mock_tokens_page)))
    assert first == second


def test_empty_input():
    assert group_into_rows([]) == []
    assert page_text([]) == ""


def test_group_into_columns():
    columns = group_into_columns(mock_tokens_page, x_tolerance=20)

    assert len(columns) == 3
    assert [t.text for t in columns[0]] == ['SKU', 'LANGO-TP2024-BLK-L']
    assert [t.text for t in columns[2]] == ['QTY', '2']


def test_tokens_in_range_and_page_text():
    assert [t.text for t in tokens_in_range(mock_tokens_page, 380, 420)] == ['QTY', '2']

    rows = group_into_rows(mock_tokens_page)
    assert page_text(rows) == 'SKU Description QTY\nLANGO-TP2024-BLK-L Cotton Track Pants 2'
