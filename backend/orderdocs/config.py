"""
Configuration Management
Centralized settings loaded from environment variables
"""

import os
from functools import lru_cache
from pydantic import BaseModel
from typing import List
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _csv_env(name: str, default: str) -> List[str]:
    """Read a comma separated environment variable into a list"""
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseModel):
    """Application settings loaded from environment variables"""

    # Application
    app_name: str = os.getenv("APP_NAME", "Order Document Extractor API")
    version: str = os.getenv("VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"
    environment: str = os.getenv("ENVIRONMENT", "production")

    # Logging
    log_file: str = os.getenv("LOG_FILE", "orderdocs.log")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")

    # File Upload
    max_upload_size_mb: int = int(os.getenv("MAX_UPLOAD_SIZE_MB", "20"))
    allowed_file_extensions: List[str] = [".pdf"]

    # Rate Limiting
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    upload_rate_limit: str = os.getenv("UPLOAD_RATE_LIMIT", "30/minute")
    general_rate_limit: str = os.getenv("GENERAL_RATE_LIMIT", "100/minute")

    # Row / column geometry (PDF points)
    y_tolerance: float = float(os.getenv("Y_TOLERANCE", "5"))
    header_search_depth: int = int(os.getenv("HEADER_SEARCH_DEPTH", "15"))
    column_left_pad: float = float(os.getenv("COLUMN_LEFT_PAD", "20"))
    column_right_pad: float = float(os.getenv("COLUMN_RIGHT_PAD", "100"))
    qty_cluster_tolerance: float = float(os.getenv("QTY_CLUSTER_TOLERANCE", "20"))

    # Field extraction
    address_max_lines: int = int(os.getenv("ADDRESS_MAX_LINES", "5"))

    # SKU validation
    sku_blacklist: List[str] = _csv_env(
        "SKU_BLACKLIST", "AWB,WB,FMPC,FMPP,Order,Not,Printed,Resale,Invoice"
    )
    sku_patterns: List[str] = [
        r"^[A-Z0-9]+-[A-Z0-9\-]*\d{2,}$",
        r"\b(LANGO|LGO|LC|LNGO|L-A|L-)-[A-Z0-9\-]{4,}\b",
    ]

    # Myntra picklists: tighter row grouping, wrapped code cells within this distance
    myntra_y_tolerance: float = float(os.getenv("MYNTRA_Y_TOLERANCE", "4"))
    myntra_wrap_tolerance: float = float(os.getenv("MYNTRA_WRAP_TOLERANCE", "14"))

    # Cropping: invoice share of the page measured from the bottom edge
    split_ratio: float = float(os.getenv("SPLIT_RATIO", "0.45"))
    label_target_width: float = float(os.getenv("LABEL_TARGET_WIDTH", "288"))
    label_target_height: float = float(os.getenv("LABEL_TARGET_HEIGHT", "432"))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
