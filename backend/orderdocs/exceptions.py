"""
Domain errors for the extraction core and standardized HTTP exceptions
for the API layer
"""
from fastapi import HTTPException, status


class OrderDocError(Exception):
    """Base class for errors raised by the extraction and cropping core"""


class CropGeometryError(OrderDocError, ValueError):
    """Raised when a split would produce an empty or inverted page box"""
    def __init__(self, message: str, width: float = None, height: float = None, split_ratio: float = None):
        super().__init__(message)
        self.width = width
        self.height = height
        self.split_ratio = split_ratio


class DocumentReadError(OrderDocError):
    """Raised when a source document cannot be opened or decoded"""
    def __init__(self, source: str, reason: str):
        super().__init__(f"Could not read document '{source}': {reason}")
        self.source = source
        self.reason = reason


class ProcessingFailedException(HTTPException):
    """Raised when an uploaded order document cannot be parsed or cropped"""
    def __init__(self, filename: str, reason: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Could not process order document '{filename}': {reason}"
        )


class InvalidFileTypeException(HTTPException):
    """Raised when an order document upload is not a PDF"""
    def __init__(self, file_type: str, allowed_types: list):
        super().__init__(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=(
                f"Marketplace labels, invoices and picklists must be uploaded as "
                f"{' or '.join(allowed_types)}; got '{file_type or 'no extension'}'"
            )
        )


class FileTooLargeException(HTTPException):
    """Raised when an order document upload exceeds MAX_UPLOAD_SIZE_MB"""
    def __init__(self, size_mb: float, max_size_mb: int):
        super().__init__(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"Order document is {size_mb:.2f}MB; split the marketplace export "
                f"into files of at most {max_size_mb}MB"
            )
        )
