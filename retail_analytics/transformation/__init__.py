"""
Data Transformation Module
"""
from .normalizers import (
    normalize_catalog_row,
    normalize_order_row,
    parse_csv_text,
    standardize_datetime,
    to_number,
)

__all__ = [
    "normalize_catalog_row",
    "normalize_order_row",
    "parse_csv_text",
    "standardize_datetime",
    "to_number",
]
