"""
Helpers around parse results: summaries for the UI, QA debug dumps and
CSV export of line items
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Union

import pandas as pd

from .schemas import DocumentParseResult

logger = logging.getLogger(__name__)

LINE_ITEM_COLUMNS = [
    "page_number", "order_id", "invoice_number", "invoice_date", "tracking_id", "payment_type",
    "sku", "asin", "myntra_sku", "quantity", "qty_source", "product_name", "extraction_source",
]


def summarize_document(result: DocumentParseResult) -> Dict[str, int]:
    """
    Counts shown to the user after an upload

    Args:
        result: Parsed document

    Returns:
        Dictionary with page, item and rejection counts
    """
    return {
        "pages_total": len(result.pages),
        "pages_parsed": result.pages_parsed,
        "pages_skipped": result.pages_skipped,
        "pages_failed": sum(1 for page in result.pages if page.error),
        "items": len(result.items),
        "rejected": sum(len(page.rejected) for page in result.pages),
        "guessed_quantities": sum(1 for item in result.items if item.qty_source == "guessed"),
    }


def line_items_dataframe(result: DocumentParseResult) -> pd.DataFrame:
    """One row per line item, with the page's order context flattened in"""
    records = []
    for page in result.pages:
        context = page.context
        for item in page.items:
            records.append({
                "page_number": page.page_number,
                "order_id": context.order_id.value,
                "invoice_number": context.invoice_number.value,
                "invoice_date": context.invoice_date.value,
                "tracking_id": context.tracking_id.value,
                "payment_type": context.payment_type.value,
                "sku": item.sku,
                "asin": item.asin,
                "myntra_sku": item.myntra_sku,
                "quantity": item.quantity,
                "qty_source": item.qty_source,
                "product_name": item.product_name,
                "extraction_source": item.extraction_source,
            })
    return pd.DataFrame(records, columns=LINE_ITEM_COLUMNS)


def write_line_items_csv(result: DocumentParseResult, csv_file: Union[str, Path]) -> bool:
    """
    Write the document's line items to CSV

    Returns:
        True if successful, False otherwise
    """
    try:
        df = line_items_dataframe(result)
        df.to_csv(csv_file, index=False, encoding='utf-8')
        logger.info(f"CSV created: {csv_file} ({len(df)} items)")
        return True
    except OSError as e:
        logger.error(f"Failed to create CSV {csv_file}: {e}")
        return False


def write_debug_report(result: DocumentParseResult, path: Union[str, Path]) -> bool:
    """
    Dump the full parse (items, rejections, notes, layouts) as JSON for QA review

    Args:
        result: Parsed document
        path: Output file

    Returns:
        True if successful, False otherwise
    """
    report = result.model_dump(mode="json")
    report["summary"] = summarize_document(result)
    report["saved_at"] = datetime.now().isoformat()

    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        logger.info(f"Debug report written to {path}")
        return True
    except OSError as e:
        logger.error(f"Failed to write debug report {path}: {e}")
        return False


def validate_file_type(filename: str, allowed_extensions: Iterable[str]) -> bool:
    """True when the filename's extension is in `allowed_extensions`"""
    return Path(filename or "").suffix.lower() in {ext.lower() for ext in allowed_extensions}
