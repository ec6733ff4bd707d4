"""
Document parser: runs the extraction pipeline page by page

rows -> columns -> line items, plus order-level context and, on invoice
pages, the invoice section. Pages are processed in order because a later
page may rely on the order id or invoice number printed on an earlier one.
"""

import logging
from typing import Iterable, List, Optional, Union

from .columns import DEFAULT_HEADER_KEYWORDS, detect_columns
from .config import Settings, get_settings
from .fields import extract_order_context, placeholder_field
from .invoice import extract_invoice_fields
from .line_items import LineItemExtractor, SkuValidator
from .marketplaces import (
    Marketplace, detect_page_type, needs_ocr, parse_amazon_invoice_page, parse_myntra_picklist_page,
)
from .schemas import (
    ColumnLayout, DocumentParseResult, LineItem, OrderContext, PageParseResult, PageText,
)
from .text_model import group_into_rows, page_text

logger = logging.getLogger(__name__)

_CONTEXT_FIELDS = ["order_id", "invoice_number", "invoice_date", "tracking_id", "payment_type"]


def merge_context(current: OrderContext, previous: Optional[OrderContext]) -> OrderContext:
    """Fill fields missing on this page from the previous page's context"""
    if previous is None:
        return current

    updates = {}
    for name in _CONTEXT_FIELDS:
        mine = getattr(current, name)
        theirs = getattr(previous, name)
        if not mine.found and theirs.found:
            updates[name] = theirs
    return current.model_copy(update=updates) if updates else current


def placeholder_context() -> OrderContext:
    return OrderContext(**{name: placeholder_field() for name in _CONTEXT_FIELDS})


class OrderDocumentParser:
    """
    Stateless page/document parser

    Holds only its settings and SKU validator; any number of documents can
    be parsed concurrently with the same instance.
    """

    def __init__(self, settings: Optional[Settings] = None, validator: Optional[SkuValidator] = None):
        self.settings = settings or get_settings()
        self.line_items = LineItemExtractor(self.settings, validator)

    def _detect_layout(self, rows) -> ColumnLayout:
        return detect_columns(
            rows,
            header_keywords=DEFAULT_HEADER_KEYWORDS,
            search_depth=self.settings.header_search_depth,
            left_pad=self.settings.column_left_pad,
            right_pad=self.settings.column_right_pad,
        )

    def parse_page(self, page: PageText, context: Optional[OrderContext] = None,
                   marketplace: Union[Marketplace, str] = Marketplace.GENERIC) -> PageParseResult:
        """
        Parse one page

        Args:
            page: Tokens and raw text for the page
            context: Order context carried over from earlier pages
            marketplace: Selects the Amazon ASIN parser on invoice pages or the
                Myntra picklist parser

        Returns:
            PageParseResult; on failure `error` is set and items are empty
        """
        marketplace = Marketplace(marketplace)

        if page.read_error:
            logger.warning(f"Page {page.page_number}: text layer unreadable ({page.read_error})")
            return PageParseResult(
                page_number=page.page_number,
                context=context or OrderContext(),
                parsing_notes=[f"Text layer unreadable: {page.read_error}"],
                error=page.read_error,
            )

        if not page.tokens and not (page.raw_text or "").strip():
            logger.info(f"Page {page.page_number}: no text layer")
            return PageParseResult(
                page_number=page.page_number,
                context=merge_context(placeholder_context(), context),
                parsing_notes=["Empty page - no text layer, OCR required"],
            )

        try:
            rows = group_into_rows(page.tokens, self.settings.y_tolerance)
            raw_text = page.raw_text if (page.raw_text or "").strip() else page_text(rows)
            page_type = detect_page_type(raw_text)

            page_context = merge_context(extract_order_context(raw_text), context)
            layout = self._detect_layout(rows)
            notes: List[str] = []

            if marketplace == Marketplace.AMAZON:
                items: List[LineItem] = []
                rejected = []
                if page_type == "invoice":
                    items = parse_amazon_invoice_page(page, self.settings)
                if not items:
                    notes.append("No ASIN line items found on page")
                if needs_ocr(raw_text):
                    notes.append("Page may need OCR - no ASIN/SKU candidates found")
            else:
                if marketplace == Marketplace.MYNTRA:
                    extraction = parse_myntra_picklist_page(page, self.settings)
                else:
                    extraction = self.line_items.extract(rows, layout)
                items = list(extraction.items)
                rejected = list(extraction.rejected)
                notes.extend(extraction.notes)

            invoice = None
            if page_type == "invoice":
                invoice = extract_invoice_fields(page.tokens, raw_text, self.settings)
                notes.extend(invoice.parsing_notes)

        except Exception as e:
            logger.exception(f"Page {page.page_number}: extraction failed")
            return PageParseResult(
                page_number=page.page_number,
                context=context or OrderContext(),
                parsing_notes=[f"Extraction failed: {e}"],
                error=str(e),
            )

        logger.info(f"Page {page.page_number}: {len(items)} item(s), {len(rejected)} rejected ({page_type})")
        return PageParseResult(
            page_number=page.page_number,
            context=page_context,
            layout=layout,
            items=items,
            rejected=rejected,
            invoice=invoice,
            parsing_notes=notes,
        )

    def parse_document(self, pages: Iterable[PageText],
                       marketplace: Union[Marketplace, str] = Marketplace.GENERIC,
                       source_name: str = "document.pdf") -> DocumentParseResult:
        """
        Parse pages in order, carrying order-level context forward

        A failed page yields an error result and does not stop the pages
        after it.
        """
        marketplace = Marketplace(marketplace)
        results: List[PageParseResult] = []
        context: Optional[OrderContext] = None

        for page in pages:
            result = self.parse_page(page, context, marketplace)
            results.append(result)
            if result.error is None:
                context = result.context

        notes: List[str] = []
        failed = [r.page_number for r in results if r.error]
        if failed:
            notes.append(f"Extraction failed on page(s): {', '.join(str(n) for n in failed)}")
        if not any(r.items for r in results):
            notes.append("No line items found in document")

        document = DocumentParseResult(
            source_name=source_name,
            marketplace=marketplace.value,
            pages=results,
            parsing_notes=notes,
        )
        logger.info(
            f"{source_name}: {len(document.items)} item(s), "
            f"{document.pages_parsed} page(s) parsed, {document.pages_skipped} skipped"
        )
        return document
