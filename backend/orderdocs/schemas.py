"""
Data model for the extraction core plus standardized API response schemas

Every parsing value below is immutable once built; a page parse produces a
self-contained result that the caller consumes once.
"""
from enum import Enum
from typing import Optional, Any, Dict, List, Union, Literal

from pydantic import BaseModel, Field


Confidence = Literal["high", "medium", "low"]
FieldSource = Literal["primary", "fallback", "ocr_placeholder"]
QtySource = Literal["column", "label", "proximity", "guessed"]
RejectReason = Literal["blacklisted", "no_digits", "pattern_mismatch"]
CropRole = Literal["label", "invoice"]


class _Value(BaseModel):
    class Config:
        frozen = True


# ---------------------------------------------------------------------------
# Positional text
# ---------------------------------------------------------------------------

class PositionedToken(_Value):
    """One run of text in page space (origin bottom-left, y grows upward)"""
    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0


class Row(_Value):
    """Tokens sharing an effective y; `y` is the representative (first) token's y"""
    y: float
    tokens: List[PositionedToken]

    @property
    def text(self) -> str:
        return " ".join(token.text for token in self.tokens)


# ---------------------------------------------------------------------------
# Column geometry
# ---------------------------------------------------------------------------

class ColumnKind(str, Enum):
    SKU = "SKU"
    QTY = "QTY"
    PRODUCT = "PRODUCT"
    DESCRIPTION = "DESCRIPTION"
    HSN = "HSN"
    RATE = "RATE"
    TAXABLE_VALUE = "TAXABLE_VALUE"
    GST_AMOUNT = "GST_AMOUNT"
    TOTAL = "TOTAL"


class ColumnRange(_Value):
    name: ColumnKind
    min_x: float
    max_x: float

    def contains(self, token: PositionedToken) -> bool:
        return self.min_x <= token.x <= self.max_x


class ColumnLayout(_Value):
    """Header row position and the column ranges derived from it"""
    header_row_index: int = -1
    header_text: Optional[str] = None
    columns: List[ColumnRange] = Field(default_factory=list)

    @property
    def has_header(self) -> bool:
        return self.header_row_index >= 0

    def get(self, kind: ColumnKind) -> Optional[ColumnRange]:
        for column in self.columns:
            if column.name == kind:
                return column
        return None


# ---------------------------------------------------------------------------
# Fields and line items
# ---------------------------------------------------------------------------

class ExtractedField(_Value):
    value: Union[str, int, float, None] = None
    source: FieldSource = "fallback"
    confidence: Confidence = "low"
    tokens_matched: List[str] = Field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.value is not None


class OrderContext(_Value):
    """Order-level fields shared by every line item of a page"""
    order_id: ExtractedField = Field(default_factory=ExtractedField)
    invoice_number: ExtractedField = Field(default_factory=ExtractedField)
    invoice_date: ExtractedField = Field(default_factory=ExtractedField)
    tracking_id: ExtractedField = Field(default_factory=ExtractedField)
    payment_type: ExtractedField = Field(default_factory=ExtractedField)


class LineItem(_Value):
    sku: str
    quantity: int = 1
    product_name: str = "Unknown Product"
    raw_line: str = ""
    qty_source: QtySource = "guessed"
    sku_valid: bool = True
    matched_pattern: Optional[str] = None
    row_index: Optional[int] = None
    sku_cell_text: str = ""
    qty_cell_text: str = ""
    extraction_source: str = "column"
    asin: Optional[str] = None
    myntra_sku: Optional[str] = None


class RejectedCandidate(_Value):
    sku: str
    reason: RejectReason
    row_index: Optional[int] = None
    raw_line: str = ""
    sku_cell_text: str = ""


class LineItemExtraction(_Value):
    items: List[LineItem] = Field(default_factory=list)
    rejected: List[RejectedCandidate] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Invoice section
# ---------------------------------------------------------------------------

class InvoiceItemRow(_Value):
    description: str
    hsn: Optional[str] = None
    qty: int = 0
    rate: Optional[float] = None
    taxable_value: Optional[float] = None
    gst_amount: Optional[float] = None
    line_total: Optional[float] = None
    cell_tokens: List[str] = Field(default_factory=list)


class InvoiceFields(_Value):
    invoice_no: ExtractedField = Field(default_factory=ExtractedField)
    invoice_date: ExtractedField = Field(default_factory=ExtractedField)
    order_id: ExtractedField = Field(default_factory=ExtractedField)
    gstin: ExtractedField = Field(default_factory=ExtractedField)
    bill_to: ExtractedField = Field(default_factory=ExtractedField)
    ship_to: ExtractedField = Field(default_factory=ExtractedField)
    subtotal: ExtractedField = Field(default_factory=ExtractedField)
    total_tax: ExtractedField = Field(default_factory=ExtractedField)
    grand_total: ExtractedField = Field(default_factory=ExtractedField)
    total_taxable_value: ExtractedField = Field(default_factory=ExtractedField)
    item_rows: List[InvoiceItemRow] = Field(default_factory=list)
    invoice_detected: bool = False
    parsing_notes: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Cropping
# ---------------------------------------------------------------------------

class Box(_Value):
    left: float
    bottom: float
    right: float
    top: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.top - self.bottom

    def as_list(self) -> List[float]:
        return [self.left, self.bottom, self.right, self.top]


class TargetSize(_Value):
    width: float
    height: float


class CropOutput(_Value):
    role: CropRole
    box: Box
    target_size: Optional[TargetSize] = None


class CropSpec(_Value):
    split_ratio: float
    outputs: List[CropOutput]

    def output(self, role: str) -> Optional[CropOutput]:
        for out in self.outputs:
            if out.role == role:
                return out
        return None


class CropBoxes(_Value):
    label_box: Box
    invoice_box: Box


class CropResult(_Value):
    label_pdf: bytes
    invoice_pdf: bytes
    page_number: int


# ---------------------------------------------------------------------------
# Page / document results
# ---------------------------------------------------------------------------

class PageText(_Value):
    """Output of the external text layer for one page"""
    page_number: int
    raw_text: str = ""
    tokens: List[PositionedToken] = Field(default_factory=list)
    width: Optional[float] = None
    height: Optional[float] = None
    read_error: Optional[str] = None


class PageParseResult(_Value):
    page_number: int
    context: OrderContext = Field(default_factory=OrderContext)
    layout: ColumnLayout = Field(default_factory=ColumnLayout)
    items: List[LineItem] = Field(default_factory=list)
    rejected: List[RejectedCandidate] = Field(default_factory=list)
    invoice: Optional[InvoiceFields] = None
    parsing_notes: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class DocumentParseResult(_Value):
    source_name: str = "document.pdf"
    marketplace: str = "generic"
    pages: List[PageParseResult] = Field(default_factory=list)
    parsing_notes: List[str] = Field(default_factory=list)

    @property
    def items(self) -> List[LineItem]:
        return [item for page in self.pages for item in page.items]

    @property
    def pages_parsed(self) -> int:
        return sum(1 for page in self.pages if page.items)

    @property
    def pages_skipped(self) -> int:
        return sum(1 for page in self.pages if not page.items)


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------

class APIResponse(BaseModel):
    """Standard API response wrapper"""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
    error: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Parsed 3 line item(s) from 2 page(s)",
                "data": {"source_name": "flipkart-labels.pdf", "pages": []},
                "meta": {"pages_parsed": 2, "pages_skipped": 0}
            }
        }


class ErrorResponse(BaseModel):
    """Standard error response"""
    success: bool = False
    error: str
    detail: Optional[str] = None
    path: Optional[str] = None
    timestamp: Optional[str] = None


class CropBoxesRequest(BaseModel):
    width: float
    height: float
    split_ratio: Optional[float] = None
