"""
Page cropper: splits a combined shipping-label + tax-invoice page into two
standalone single-page PDFs.

The invoice occupies the bottom `split_ratio` share of the page and the
label the rest. Each half is emitted either at native scale (MediaBox /
CropBox narrowed to the half, content untouched) or fitted and centered
into a fixed target page with a uniform scale factor.
"""

import io
import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple

from pypdf import PdfReader, PdfWriter, Transformation
from pypdf.generic import RectangleObject

from .config import Settings, get_settings
from .exceptions import CropGeometryError, DocumentReadError
from .schemas import Box, CropBoxes, CropOutput, CropResult, CropSpec, TargetSize

logger = logging.getLogger(__name__)


def crop_page(width: float, height: float, split_ratio: float) -> CropBoxes:
    """
    Compute label/invoice boxes for a page

    Args:
        width: Page width
        height: Page height
        split_ratio: Invoice share of the height, measured from the bottom

    Returns:
        CropBoxes; label is the upper part, invoice the lower part

    Raises:
        CropGeometryError: If an input is not finite or either box would have
            zero or negative size
    """
    if not all(map(math.isfinite, (width, height, split_ratio))):
        raise CropGeometryError(
            f"Page geometry {width}x{height} at split_ratio={split_ratio} is not finite",
            width=width, height=height, split_ratio=split_ratio,
        )
    if width <= 0 or height <= 0:
        raise CropGeometryError(
            f"Page geometry {width}x{height} has no area",
            width=width, height=height, split_ratio=split_ratio,
        )

    split_y = height * split_ratio
    label_box = Box(left=0, bottom=split_y, right=width, top=height)
    invoice_box = Box(left=0, bottom=0, right=width, top=split_y)

    for role, box in (("label", label_box), ("invoice", invoice_box)):
        if box.height <= 0:
            raise CropGeometryError(
                f"split_ratio={split_ratio} leaves the {role} box with height {box.height}",
                width=width, height=height, split_ratio=split_ratio,
            )

    return CropBoxes(label_box=label_box, invoice_box=invoice_box)


def build_crop_spec(width: float, height: float, split_ratio: float,
                    label_target: Optional[TargetSize] = None,
                    invoice_target: Optional[TargetSize] = None) -> CropSpec:
    boxes = crop_page(width, height, split_ratio)
    return CropSpec(
        split_ratio=split_ratio,
        outputs=[
            CropOutput(role="label", box=boxes.label_box, target_size=label_target),
            CropOutput(role="invoice", box=boxes.invoice_box, target_size=invoice_target),
        ],
    )


def fit_transform(box: Box, target: TargetSize) -> Tuple[float, float, float]:
    """
    Uniform scale and offsets that fit `box` inside `target`, centered

    Returns:
        (scale, dx, dy) applied after moving the box origin to (0, 0)
    """
    sizes = (box.width, box.height, target.width, target.height)
    if not all(map(math.isfinite, sizes)) or min(sizes) <= 0:
        raise CropGeometryError(f"Cannot fit {box.width}x{box.height} into {target.width}x{target.height}")

    scale = min(target.width / box.width, target.height / box.height)
    dx = (target.width - box.width * scale) / 2
    dy = (target.height - box.height * scale) / 2
    return scale, dx, dy


def _offset(box: Box, left: float, bottom: float) -> Box:
    """Shift a 0-origin box onto a page whose MediaBox does not start at 0,0"""
    return Box(left=box.left + left, bottom=box.bottom + bottom,
               right=box.right + left, top=box.top + bottom)


def _to_bytes(writer: PdfWriter) -> bytes:
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def _open(pdf_bytes: bytes, source: str = "document") -> PdfReader:
    if not pdf_bytes:
        raise DocumentReadError(source, "empty input")
    try:
        return PdfReader(io.BytesIO(pdf_bytes))
    except Exception as e:
        raise DocumentReadError(source, str(e)) from e


class PdfCropper:
    """
    Splits every page of a PDF into a label PDF and an invoice PDF
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def label_target(self) -> TargetSize:
        return TargetSize(width=self.settings.label_target_width,
                          height=self.settings.label_target_height)

    def _render(self, reader: PdfReader, page_index: int, output: CropOutput) -> bytes:
        page = reader.pages[page_index]
        media = page.mediabox
        box = _offset(output.box, float(media.left), float(media.bottom))
        rect = RectangleObject(box.as_list())

        page.mediabox = rect
        page.cropbox = rect

        writer = PdfWriter()
        if output.target_size is None:
            writer.add_page(page)
            return _to_bytes(writer)

        scale, dx, dy = fit_transform(box, output.target_size)
        blank = writer.add_blank_page(width=output.target_size.width, height=output.target_size.height)
        # merge clips the source to its CropBox, so nothing outside the box leaks into the margins
        blank.merge_transformed_page(
            page,
            Transformation().translate(-box.left, -box.bottom).scale(scale, scale).translate(dx, dy),
        )
        return _to_bytes(writer)

    def crop_document(self, pdf_bytes: bytes, split_ratio: Optional[float] = None,
                      fit_label: bool = False, source: str = "document.pdf") -> List[CropResult]:
        """
        Crop every page into label and invoice PDFs

        Args:
            pdf_bytes: Source PDF
            split_ratio: Invoice share from the bottom (defaults to settings)
            fit_label: Rescale the label half into the configured label size
            source: Name used in logs and errors

        Returns:
            One CropResult per page, in page order

        Raises:
            DocumentReadError: Source cannot be parsed
            CropGeometryError: A page yields a degenerate box
        """
        ratio = self.settings.split_ratio if split_ratio is None else split_ratio

        # One reader per role: box edits on a page object stay local to that role
        label_reader = _open(pdf_bytes, source)
        invoice_reader = _open(pdf_bytes, source)

        results: List[CropResult] = []
        for index in range(len(label_reader.pages)):
            media = label_reader.pages[index].mediabox
            spec = build_crop_spec(
                float(media.width), float(media.height), ratio,
                label_target=self.label_target if fit_label else None,
            )

            label_pdf = self._render(label_reader, index, spec.output("label"))
            invoice_pdf = self._render(invoice_reader, index, spec.output("invoice"))
            results.append(CropResult(label_pdf=label_pdf, invoice_pdf=invoice_pdf, page_number=index + 1))
            logger.info(f"Cropped page {index + 1} of {source} at split_ratio={ratio}")

        return results


def combine_pdfs(documents: Iterable[bytes]) -> bytes:
    """Concatenate single- or multi-page PDFs into one document, preserving order"""
    writer = PdfWriter()
    for data in documents:
        for page in _open(data).pages:
            writer.add_page(page)
    return _to_bytes(writer)


def combine_labels(results: Sequence[CropResult]) -> bytes:
    return combine_pdfs(r.label_pdf for r in results)


def combine_invoices(results: Sequence[CropResult]) -> bytes:
    return combine_pdfs(r.invoice_pdf for r in results)
