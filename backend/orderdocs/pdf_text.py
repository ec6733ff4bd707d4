"""
PDF text layer: turns a PDF byte stream into positioned tokens per page
"""

import io
import logging
from typing import Any, Dict, Iterable, List

import pdfplumber

from .exceptions import DocumentReadError
from .schemas import PageText, PositionedToken

logger = logging.getLogger(__name__)


def words_to_tokens(words: Iterable[Dict[str, Any]], page_height: float) -> List[PositionedToken]:
    """
    Convert pdfplumber words (top-left origin) to bottom-left origin tokens

    Args:
        words: Dicts with text, x0, x1, top, bottom
        page_height: Height of the page the words came from

    Returns:
        Tokens whose y is the distance of the word's bottom edge from the page bottom
    """
    tokens: List[PositionedToken] = []
    for word in words:
        text = str(word.get("text", "")).strip()
        if not text:
            continue
        x0, x1 = float(word["x0"]), float(word["x1"])
        top, bottom = float(word["top"]), float(word["bottom"])
        tokens.append(PositionedToken(
            text=text,
            x=x0,
            y=page_height - bottom,
            width=x1 - x0,
            height=bottom - top,
        ))
    return tokens


def _read_page(page, page_number: int, source: str) -> PageText:
    """Text and tokens for one pdfplumber page; a failure is kept on the page"""
    height = float(page.height)
    try:
        words = page.extract_words(keep_blank_chars=False, use_text_flow=True)
        return PageText(
            page_number=page_number,
            raw_text=page.extract_text() or "",
            tokens=words_to_tokens(words, height),
            width=float(page.width),
            height=height,
        )
    except Exception as e:
        logger.warning(f"Could not read page {page_number} of {source}: {e}")
        return PageText(page_number=page_number, width=float(page.width), height=height, read_error=str(e))


def read_pdf_pages(pdf_bytes: bytes, source: str = "document.pdf") -> List[PageText]:
    """
    Extract text and positioned tokens for every page

    A page whose content cannot be decoded comes back without tokens and
    with `read_error` set; the other pages are still read.

    Raises:
        DocumentReadError: The bytes are empty or not a readable PDF
    """
    if not pdf_bytes:
        raise DocumentReadError(source, "empty input")

    try:
        pdf = pdfplumber.open(io.BytesIO(pdf_bytes))
    except Exception as e:
        raise DocumentReadError(source, str(e)) from e

    with pdf:
        try:
            plumber_pages = list(pdf.pages)
        except Exception as e:
            raise DocumentReadError(source, str(e)) from e
        pages = [_read_page(page, index + 1, source) for index, page in enumerate(plumber_pages)]

    failed = [p.page_number for p in pages if p.read_error]
    logger.info(f"Read {len(pages)} page(s) from {source}" + (f", {len(failed)} unreadable" if failed else ""))
    return pages
