"""
Order Document Extractor API
FastAPI adapter over the extraction and cropping core
Rate limited, JSON structured logging, standardized error responses
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import logging
from logging.handlers import RotatingFileHandler
from pythonjsonlogger import jsonlogger

# Rate limiting
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .cropper import PdfCropper, combine_invoices, combine_labels, crop_page
from .exceptions import (
    CropGeometryError,
    DocumentReadError,
    FileTooLargeException,
    InvalidFileTypeException,
    OrderDocError,
    ProcessingFailedException,
)
from .marketplaces import Marketplace
from .parser import OrderDocumentParser
from .pdf_text import read_pdf_pages
from .schemas import APIResponse, CropBoxesRequest, ErrorResponse
from .utils import line_items_dataframe, summarize_document, validate_file_type

# Get settings
settings = get_settings()


# Configure JSON logging
def setup_logging():
    """Setup JSON structured logging"""
    log_handler = RotatingFileHandler(
        settings.log_file,
        maxBytes=10485760,  # 10MB
        backupCount=5
    )

    formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(message)s %(pathname)s %(lineno)d'
    )
    log_handler.setFormatter(formatter)

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if settings.debug else settings.log_level.upper())
    logger.addHandler(log_handler)

    # Console handler for development
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(console_handler)

    return logger

logger = setup_logging()

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

# FastAPI app initialization
app = FastAPI(
    title=settings.app_name,
    description="Line-item extraction and label/invoice cropping for marketplace order PDFs",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS configuration
allowed_origins = settings.cors_origins.split(",") if settings.cors_origins != "*" else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# API Router for versioning
api_router = APIRouter(prefix="/api/v1")

# Engine objects hold only settings, so one instance serves every request
document_parser = OrderDocumentParser(settings)
pdf_cropper = PdfCropper(settings)


@app.exception_handler(OrderDocError)
async def order_doc_error_handler(request: Request, exc: OrderDocError):
    logger.warning(f"{request.url.path}: {exc}")
    body = ErrorResponse(
        error=exc.__class__.__name__,
        detail=str(exc),
        path=request.url.path,
        timestamp=datetime.now().isoformat(),
    )
    return JSONResponse(status_code=422, content=body.model_dump())


async def read_upload(file: UploadFile) -> bytes:
    """
    Validate an uploaded file's extension and size and return its bytes

    Raises:
        InvalidFileTypeException: Extension not in settings.allowed_file_extensions
        FileTooLargeException: Larger than settings.max_upload_size_mb
    """
    filename = file.filename or "unknown"
    if not validate_file_type(filename, settings.allowed_file_extensions):
        raise InvalidFileTypeException(Path(filename).suffix.lower(), settings.allowed_file_extensions)

    content = await file.read()
    size_mb = len(content) / (1024 * 1024)
    if size_mb > settings.max_upload_size_mb:
        raise FileTooLargeException(size_mb, settings.max_upload_size_mb)

    logger.info(f"Received {filename} ({len(content)} bytes)")
    return content


@app.get("/ping")
async def ping():
    """Fast ping endpoint for keep-alive"""
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring"""
    try:
        import psutil

        memory = psutil.virtual_memory()
        disk = psutil.disk_usage('/')

        return APIResponse(
            success=True,
            data={
                "status": "healthy",
                "service": settings.app_name,
                "version": settings.version,
                "environment": settings.environment,
                "timestamp": datetime.now().isoformat(),
                "system": {
                    "python_version": sys.version.split()[0],
                    "memory_used_percent": memory.percent,
                    "disk_used_percent": disk.percent
                }
            },
            message="Service is running normally"
        ).model_dump()
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return APIResponse(
            success=False,
            message="Health check failed",
            error=str(e)
        ).model_dump()


# ==================== PARSING ENDPOINTS ====================

def _parse_upload(content: bytes, filename: str, marketplace: str):
    try:
        market = Marketplace(marketplace.lower())
    except ValueError:
        allowed = ", ".join(m.value for m in Marketplace)
        raise ProcessingFailedException(filename, f"unknown marketplace '{marketplace}' (expected one of: {allowed})")

    try:
        pages = read_pdf_pages(content, filename)
    except DocumentReadError as e:
        raise ProcessingFailedException(filename, e.reason)

    return document_parser.parse_document(pages, market, filename)


@api_router.post("/parse")
@limiter.limit(settings.upload_rate_limit)
async def parse_document(
    request: Request,
    file: UploadFile = File(...),
    marketplace: str = Form("generic"),
):
    """
    Extract order line items from a marketplace PDF

    Rate Limited: settings.upload_rate_limit

    Args:
        file: Uploaded PDF
        marketplace: flipkart, amazon, myntra or generic

    Returns:
        APIResponse with the DocumentParseResult and a summary in meta
    """
    content = await read_upload(file)
    filename = file.filename or "document.pdf"
    result = _parse_upload(content, filename, marketplace)
    summary = summarize_document(result)

    return APIResponse(
        success=True,
        message=f"Parsed {summary['items']} line item(s) from {summary['pages_parsed']} page(s)",
        data=result.model_dump(mode="json"),
        meta=summary,
    ).model_dump()


@api_router.post("/parse/csv")
@limiter.limit(settings.upload_rate_limit)
async def parse_document_csv(
    request: Request,
    file: UploadFile = File(...),
    marketplace: str = Form("generic"),
):
    """Same as /parse but returns the line items as CSV"""
    content = await read_upload(file)
    filename = file.filename or "document.pdf"
    result = _parse_upload(content, filename, marketplace)

    csv_text = line_items_dataframe(result).to_csv(index=False)
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{Path(filename).stem}-items.csv"'},
    )


# ==================== CROPPING ENDPOINTS ====================

@api_router.post("/crop")
@limiter.limit(settings.upload_rate_limit)
async def crop_document(
    request: Request,
    file: UploadFile = File(...),
    split_ratio: Optional[float] = Form(None),
    fit_label: bool = Form(False),
    output: str = Form("labels"),
):
    """
    Split every page into label and invoice halves and return one combined PDF

    Args:
        file: Uploaded PDF of combined label+invoice pages
        split_ratio: Invoice share of each page from the bottom (default from settings)
        fit_label: Scale labels into the configured label size
        output: 'labels' or 'invoices'
    """
    if output not in ("labels", "invoices"):
        raise ProcessingFailedException(file.filename or "document.pdf", f"unknown output '{output}'")

    content = await read_upload(file)
    filename = file.filename or "document.pdf"

    # CropGeometryError and DocumentReadError go through order_doc_error_handler
    results = pdf_cropper.crop_document(content, split_ratio, fit_label, filename)
    combined = combine_labels(results) if output == "labels" else combine_invoices(results)

    logger.info(f"Cropped {len(results)} page(s) of {filename} -> {output}")
    return Response(
        content=combined,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{Path(filename).stem}-{output}.pdf"',
            "X-Page-Count": str(len(results)),
        },
    )


@api_router.post("/crop/boxes")
@limiter.limit(settings.general_rate_limit)
async def crop_boxes(request: Request, body: CropBoxesRequest):
    """Compute label/invoice boxes for a page geometry without touching a PDF"""
    ratio = settings.split_ratio if body.split_ratio is None else body.split_ratio
    try:
        boxes = crop_page(body.width, body.height, ratio)
    except CropGeometryError as e:
        raise ProcessingFailedException("geometry", str(e))

    return APIResponse(
        success=True,
        data={
            "split_ratio": ratio,
            "label_box": boxes.label_box.model_dump(),
            "invoice_box": boxes.invoice_box.model_dump(),
        },
    ).model_dump()


app.include_router(api_router)

if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
