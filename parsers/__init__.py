"""
Import file parsers.
"""

from parsers.catalog_parser import (
    RawRow,
    iter_source_rows,
    normalize_row,
    extract_attributes,
    SUPPORTED_EXTENSIONS,
)

__all__ = [
    "RawRow",
    "iter_source_rows",
    "normalize_row",
    "extract_attributes",
    "SUPPORTED_EXTENSIONS",
]
