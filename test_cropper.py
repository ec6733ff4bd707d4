"""
Tests for label/invoice page splitting
"""

import io

import pytest
from pypdf import PdfReader, PdfWriter

from orderdocs.config import Settings
from orderdocs.cropper import (
    PdfCropper, build_crop_spec, combine_invoices, combine_labels, crop_page, fit_transform,
)
from orderdocs.exceptions import CropGeometryError, DocumentReadError
from orderdocs.schemas import Box, TargetSize


def make_pdf(*sizes):
    """Blank PDF with one page per (width, height)"""
    writer = PdfWriter()
    for width, height in sizes:
        writer.add_blank_page(width=width, height=height)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_boxes(pdf_bytes):
    reader = PdfReader(io.BytesIO(pdf_bytes))
    return [page.mediabox for page in reader.pages]


def test_scenario_split_1000_at_045():
    boxes = crop_page(612, 1000, 0.45)

    assert (boxes.invoice_box.bottom, boxes.invoice_box.top) == (0, 450)
    assert (boxes.label_box.bottom, boxes.label_box.top) == (450, 1000)
    assert boxes.label_box.width == boxes.invoice_box.width == 612


def test_boxes_cover_page_without_overlap():
    for height in (1000, 792, 842.5):
        boxes = crop_page(612, height, 0.4)
        total = boxes.label_box.height + boxes.invoice_box.height
        assert total == pytest.approx(height)
        assert boxes.invoice_box.top == boxes.label_box.bottom, "Boxes meet at the split line"


@pytest.mark.parametrize("width,height,ratio", [
    (612, 792, 0.0),
    (612, 792, 1.0),
    (612, 792, 1.2),
    (612, 0, 0.45),
    (0, 792, 0.45),
    (612, 792, float("nan")),
    (612, 792, float("inf")),
    (612, float("inf"), 0.45),
    (float("nan"), 792, 0.45),
])
def test_degenerate_geometry_rejected(width, height, ratio):
    with pytest.raises(CropGeometryError):
        crop_page(width, height, ratio)


def test_fit_transform_rejects_non_finite_box():
    box = Box(left=0, bottom=float("nan"), right=612, top=792)
    with pytest.raises(CropGeometryError):
        fit_transform(box, TargetSize(width=288, height=432))


def test_geometry_error_is_value_error():
    with pytest.raises(ValueError):
        crop_page(612, 792, 0)


def test_crop_spec_roles():
    spec = build_crop_spec(612, 792, 0.45, label_target=TargetSize(width=288, height=432))

    assert [o.role for o in spec.outputs] == ['label', 'invoice']
    assert spec.output('label').target_size.width == 288
    assert spec.output('invoice').target_size is None


def test_fit_transform_uniform_and_centered():
    box = Box(left=0, bottom=356.4, right=612, top=792)
    scale, dx, dy = fit_transform(box, TargetSize(width=288, height=432))

    assert scale == pytest.approx(288 / 612)
    assert dx == pytest.approx(0)
    assert box.height * scale + 2 * dy == pytest.approx(432)


def test_crop_document_native_scale():
    pdf = make_pdf((612, 792), (612, 792))
    results = PdfCropper(Settings()).crop_document(pdf, split_ratio=0.45)

    assert [r.page_number for r in results] == [1, 2]

    label = page_boxes(results[0].label_pdf)
    invoice = page_boxes(results[0].invoice_pdf)
    assert len(label) == 1 and len(invoice) == 1, "Each output is a single-page document"
    assert float(label[0].bottom) == pytest.approx(356.4)
    assert float(label[0].top) == pytest.approx(792)
    assert float(invoice[0].bottom) == pytest.approx(0)
    assert float(invoice[0].top) == pytest.approx(356.4)


def test_crop_document_fit_label():
    pdf = make_pdf((612, 792))
    results = PdfCropper(Settings()).crop_document(pdf, split_ratio=0.45, fit_label=True)

    label = page_boxes(results[0].label_pdf)[0]
    assert float(label.width) == pytest.approx(288)
    assert float(label.height) == pytest.approx(432)

    invoice = page_boxes(results[0].invoice_pdf)[0]
    assert float(invoice.height) == pytest.approx(356.4), "Invoice stays at native scale"


def test_combine_preserves_page_order():
    pdf = make_pdf((612, 792), (500, 700), (400, 600))
    results = PdfCropper(Settings()).crop_document(pdf, split_ratio=0.5)

    labels = page_boxes(combine_labels(results))
    invoices = page_boxes(combine_invoices(results))

    assert [float(b.width) for b in labels] == [612, 500, 400]
    assert [float(b.width) for b in invoices] == [612, 500, 400]
    assert [float(b.top) for b in invoices] == [396, 350, 300]


def test_empty_input_rejected():
    with pytest.raises(DocumentReadError):
        PdfCropper(Settings()).crop_document(b"")
