"""
Tests for the ordered-strategy field extractors
"""

from orderdocs.fields import (
    extract_gstin, extract_grand_total, extract_invoice_date, extract_invoice_number,
    extract_multiline_address, extract_order_context, extract_order_id, extract_payment_type,
    extract_quantity_label, extract_subtotal, extract_total_tax, extract_tracking_id,
    normalize_date, parse_money,
)
from orderdocs.schemas import PositionedToken
from orderdocs.text_model import group_into_rows


def tok(text, x, y):
    return PositionedToken(text=text, x=x, y=y)


mock_flipkart_text = """Order Id: OD123456789012345
AWB No. (N): FMPC1234567890
Invoice No: FATTN2024001
Invoice Date: 05-03-2024
COD - Collect Cash
"""

mock_address_tokens = [
    tok('Bill To: Ravi Kumar', 50, 700),
    tok('12 MG Road', 50, 685),
    tok('Bengaluru 560001', 50, 670),
    tok('GSTIN: 29ABCDE1234F1Z5', 50, 655),
    tok('Unrelated footer', 50, 640),
]


def test_invoice_number_primary():
    field = extract_invoice_number('Invoice No: FATTN2024001')

    assert field.value == 'FATTN2024001', f"Got {field.value!r}"
    assert field.confidence == 'high'
    assert field.source == 'primary'


def test_invoice_number_absent():
    field = extract_invoice_number('Shipping label with no identifiers')

    assert field.value is None
    assert field.confidence == 'low'
    assert not field.found


def test_invoice_number_fallback_strategy():
    field = extract_invoice_number('Invoice Number: INV-778899')

    assert field.value == 'INV-778899'
    assert field.confidence == 'high'
    assert field.source == 'fallback', "Second strategy is tagged as a fallback"


def test_invoice_date_normalized():
    field = extract_invoice_date('Invoice Date: 05-03-2024')
    assert field.value == '2024-03-05'
    assert field.confidence == 'high'

    generic = extract_invoice_date('Date: 7/11/2023')
    assert generic.value == '2023-11-07'
    assert generic.confidence == 'medium'


def test_textual_date_low_confidence():
    field = extract_invoice_date('Placed on 12 Mar 2024')
    assert field.value == '2024-03-12'
    assert field.confidence == 'low'


def test_normalize_date_two_digit_year_untouched():
    assert normalize_date('05-03-24') == '05-03-24'


def test_order_id_marketplace_formats():
    amazon = extract_order_id('Order Number: 402-1234567-1234567')
    assert amazon.value == '402-1234567-1234567'
    assert amazon.confidence == 'high'

    flipkart = extract_order_id('Order Id: OD123456789012345')
    assert flipkart.value == 'OD123456789012345'
    assert flipkart.confidence == 'high'

    generic = extract_order_id('Order #: MYN-99881')
    assert generic.value == 'MYN-99881'
    assert generic.confidence == 'medium'


def test_gstin_labelled_then_shape():
    labelled = extract_gstin('Seller GSTIN: 29ABCDE1234F1Z5')
    assert labelled.value == '29ABCDE1234F1Z5'
    assert labelled.confidence == 'high'

    bare = extract_gstin('Registered 27AAPFU0939F1ZV office')
    assert bare.value == '27AAPFU0939F1ZV'
    assert bare.confidence == 'medium'


def test_tracking_id():
    field = extract_tracking_id(mock_flipkart_text)
    assert field.value == 'FMPC1234567890'
    assert field.confidence == 'high'


def test_money_fields():
    assert parse_money('1,23,456.50') == 123456.5

    text = 'Subtotal: 998.00\nTotal Tax: Rs. 179.64\nGrand Total: ₹1,177.64'
    assert extract_subtotal(text).value == 998.0
    assert extract_total_tax(text).value == 179.64
    assert extract_grand_total(text).value == 1177.64
    assert extract_grand_total('no totals here').value is None


def test_payment_type():
    assert extract_payment_type('Payment: COD').value == 'COD'
    assert extract_payment_type('Payment: COD').confidence == 'high'

    prepaid = extract_payment_type('Paid online')
    assert prepaid.value == 'Prepaid'
    assert prepaid.confidence == 'low', "Prepaid without evidence is a guess"


def test_quantity_label():
    assert extract_quantity_label('Qty: 3') == 3
    assert extract_quantity_label('Quantity 4') == 4
    assert extract_quantity_label('2 Units') == 2
    assert extract_quantity_label('Qty: 0') is None
    assert extract_quantity_label('no quantity here') is None


def test_multiline_address_stops_at_gstin():
    rows = group_into_rows(mock_address_tokens)
    field = extract_multiline_address(rows, r'bill\s*to')

    assert field.value == 'Ravi Kumar, 12 MG Road, Bengaluru 560001', f"Got {field.value!r}"
    assert field.confidence == 'medium'
    assert field.tokens_matched == ['Ravi Kumar', '12 MG Road', 'Bengaluru 560001']


def test_multiline_address_missing_label():
    rows = group_into_rows(mock_address_tokens)
    assert extract_multiline_address(rows, r'ship\s*to').value is None


def test_order_context():
    context = extract_order_context(mock_flipkart_text)

    assert context.order_id.value == 'OD123456789012345'
    assert context.invoice_number.value == 'FATTN2024001'
    assert context.invoice_date.value == '2024-03-05'
    assert context.tracking_id.value == 'FMPC1234567890'
    assert context.payment_type.value == 'COD'
