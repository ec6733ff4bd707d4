"""
End-to-end tests for page/document parsing and the marketplace helpers
"""

from orderdocs import parser as parser_module
from orderdocs.config import Settings
from orderdocs.marketplaces import (
    detect_page_type, extract_context_around_index, find_asins, find_seller_skus,
    needs_ocr, parse_amazon_invoice_page,
)
from orderdocs.parser import OrderDocumentParser
from orderdocs.schemas import PageText, PositionedToken


def tok(text, x, y, width=0.0):
    return PositionedToken(text=text, x=x, y=y, width=width)


# Page 1: Flipkart label with order context and one product row
mock_page_one = [
    tok('Order Id: OD123456789012345', 50, 800, 180),
    tok('Invoice No: FATTN2024001', 300, 800, 140),
    tok('SKU ID', 50, 760, 40),
    tok('Description', 200, 760, 60),
    tok('QTY', 400, 760, 20),
    tok('LANGO-TP2024-BLK-L', 50, 740, 100),
    tok('Cotton Track Pants', 200, 740, 90),
    tok('2', 400, 740, 5),
]

# Page 2: continuation of the same order without the order id
mock_page_two = [
    tok('SKU ID', 50, 760, 40),
    tok('Description', 200, 760, 60),
    tok('QTY', 400, 760, 20),
    tok('LGO-TP2099-RED-M', 50, 740, 100),
    tok('Hoodie', 200, 740, 40),
    tok('3', 400, 740, 5),
]

mock_amazon_text = (
    "Tax Invoice\n"
    "Order Number: 402-1234567-1234567\n"
    "1 Cotton Shirt B0ABCDEFGH ( LGO-TP2023-BLK-L ) Qty 2 499.00"
)

settings = Settings()


def page(number, tokens, raw_text=""):
    return PageText(page_number=number, raw_text=raw_text, tokens=tokens)


def test_parse_page_scenario():
    result = OrderDocumentParser(settings).parse_page(page(1, mock_page_one))

    assert result.error is None
    assert result.context.order_id.value == 'OD123456789012345'
    assert result.context.invoice_number.value == 'FATTN2024001'
    assert result.layout.header_row_index == 1
    assert [(i.sku, i.quantity, i.qty_source) for i in result.items] == [
        ('LANGO-TP2024-BLK-L', 2, 'column'),
    ]
    assert result.invoice is None, "Label-only page has no invoice section"


def test_context_carried_to_next_page():
    document = OrderDocumentParser(settings).parse_document(
        [page(1, mock_page_one), page(2, mock_page_two)], marketplace='flipkart', source_name='labels.pdf'
    )

    second = document.pages[1]
    assert second.context.order_id.value == 'OD123456789012345', "Order id carried from page 1"
    assert [i.sku for i in document.items] == ['LANGO-TP2024-BLK-L', 'LGO-TP2099-RED-M']
    assert document.marketplace == 'flipkart'
    assert document.pages_parsed == 2
    assert document.pages_skipped == 0


def test_empty_page_is_placeholder():
    result = OrderDocumentParser(settings).parse_page(page(1, []))

    assert result.items == []
    assert result.error is None
    assert result.context.order_id.source == 'ocr_placeholder'
    assert any('OCR' in note for note in result.parsing_notes)


def test_page_failure_does_not_stop_document(monkeypatch):
    original = parser_module.group_into_rows

    def flaky_group_into_rows(tokens, y_tolerance=5):
        tokens = list(tokens)
        if any(t.text == 'CORRUPT' for t in tokens):
            raise ValueError('unreadable token stream')
        return original(tokens, y_tolerance)

    monkeypatch.setattr(parser_module, 'group_into_rows', flaky_group_into_rows)

    pages = [page(1, mock_page_one), page(2, [tok('CORRUPT', 0, 0)]), page(3, mock_page_two)]
    document = OrderDocumentParser(settings).parse_document(pages)

    assert document.pages[1].error == 'unreadable token stream'
    assert document.pages[1].items == []
    assert len(document.pages[2].items) == 1, "Page after the failure is still parsed"
    assert document.pages[2].context.order_id.value == 'OD123456789012345'
    assert document.pages_skipped == 1
    assert any('page(s): 2' in note for note in document.parsing_notes)


def test_invoice_page_gets_invoice_section():
    tokens = mock_page_one + [tok('Tax Invoice', 50, 820, 60)]
    result = OrderDocumentParser(settings).parse_page(page(1, tokens))

    assert result.invoice is not None
    assert result.invoice.invoice_no.value == 'FATTN2024001'


def test_amazon_invoice_page():
    items = parse_amazon_invoice_page(page(1, [], mock_amazon_text), settings)

    assert len(items) == 1
    item = items[0]
    assert item.asin == 'B0ABCDEFGH'
    assert item.sku == 'LGO-TP2023-BLK-L'
    assert item.quantity == 2
    assert item.qty_source == 'label'
    assert item.sku_valid


def test_amazon_page_without_order_id():
    assert parse_amazon_invoice_page(page(1, [], 'Tax Invoice B0ABCDEFGH'), settings) == []


def test_amazon_document_route():
    document = OrderDocumentParser(settings).parse_document(
        [page(1, [], mock_amazon_text)], marketplace='amazon'
    )
    assert [i.asin for i in document.items] == ['B0ABCDEFGH']
    assert document.pages[0].invoice is not None


def test_marketplace_helpers():
    assert find_asins('B0ABCDEFGH and B0ABCDEFGH and B012345678') == ['B0ABCDEFGH', 'B012345678']

    skus = [m.sku for m in find_seller_skus('( LGO-TP2023-BLK-L ) INVOICE LC-SHIRT-01')]
    assert skus[0] == 'LGO-TP2023-BLK-L'
    assert 'INVOICE' not in skus
    assert 'LC-SHIRT-01' in skus

    assert detect_page_type('Tax Invoice for order') == 'invoice'
    assert detect_page_type('AWB 12345') == 'label'
    assert detect_page_type('hello') == 'unknown'

    assert needs_ocr('')
    assert not needs_ocr('Qty 1')

    text = 'one two three four five'
    assert extract_context_around_index(text, text.index('three'), 1, 1) == 'two three four'
