"""
Catalog source parser.

Streams CSV/XLSX product sheets row by row and normalizes each row into a
staging record. Files are never loaded wholesale:
- CSV is read through pandas in fixed-size chunks, all cells as text.
- XLSX is read through openpyxl in read-only mode, first worksheet only.

The first row is the header. Header names are trimmed and lower-cased, so
"SKU" and " sku " both map to `sku`. Columns without a dedicated staging
field (material_g, print_time_min, ...) are folded into `attributes`.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator, Optional, Union
import re
import zipfile
import structlog

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from exceptions import ImportSourceError, ImportSourceReadError
from models.imports import RowError
from models.staging import StagingRow, STAGING_COLUMNS
from utils.attributes import parse_attributes
from utils.media import classify_media_url
from utils.numbers import coerce_number, coerce_int
from utils.text_utils import clean_text, split_category_slugs

logger = structlog.get_logger(__name__)

CSV_EXTENSIONS = {".csv", ".txt"}
XLSX_EXTENSIONS = {".xlsx", ".xlsm"}
SUPPORTED_EXTENSIONS = CSV_EXTENSIONS | XLSX_EXTENSIONS

DEFAULT_CHUNK_SIZE = 1000

# Header row is row 1, so the first data row is row 2
FIRST_DATA_ROW = 2

# Legacy exports carry integer cents instead of a decimal price
PRICE_CENTS_COLUMN = "price_cents"


# Column limits of the products table: numeric(12, 2), integer, char(3)
MAX_PRICE = 10 ** 10
STOCK_MIN = -2 ** 31
STOCK_MAX = 2 ** 31 - 1
CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")

# First cell of the placeholder row that stands in for a CSV line with
# too many fields
BAD_LINE_MARKER = "\x00bad-line:"


@dataclass
class RawRow:
    """
    One source row keyed by normalized header name.

    `problem` is set when the line itself is malformed; `extra` then holds
    the fields past the last header column.
    """
    row_number: int
    values: dict[str, str] = field(default_factory=dict)
    problem: Optional[str] = None
    extra: list[str] = field(default_factory=list)

    def is_blank(self) -> bool:
        return not any(v.strip() for v in self.values.values())


# ===================
# READING
# ===================

def iter_source_rows(
    path: Union[str, Path],
    chunk_size: int = DEFAULT_CHUNK_SIZE
) -> Iterator[RawRow]:
    """
    Lazily yield rows from a CSV or XLSX file.

    Blank rows are skipped. Row numbers refer to the source file position.

    Args:
        path: Source file path
        chunk_size: CSV rows read per chunk

    Yields:
        RawRow

    Raises:
        ImportSourceError: Unsupported extension or missing header
        ImportSourceReadError: File missing, unreadable or truncated
    """
    source = Path(path)
    suffix = source.suffix.lower()

    if suffix not in SUPPORTED_EXTENSIONS:
        raise ImportSourceError(
            f"Unsupported import file type '{suffix or source.name}'",
            details={"path": str(source), "supported": sorted(SUPPORTED_EXTENSIONS)}
        )

    if not source.is_file():
        raise ImportSourceReadError(str(source), "file not found")

    logger.info("reading_import_source", path=str(source), format=suffix.lstrip("."))

    if suffix in XLSX_EXTENSIONS:
        yield from _iter_xlsx(source)
    else:
        yield from _iter_csv(source, chunk_size)


def _iter_csv(source: Path, chunk_size: int) -> Iterator[RawRow]:
    """
    Read a CSV in chunks.

    A line with more fields than the header does not stop the read: pandas
    hands it to `keep_bad_line`, which puts a placeholder row in its place
    so the line still gets its row number and comes out as a RawRow with
    `problem` set. Only I/O failures and truncated files raise.
    """
    options = {"dtype": str, "encoding": "utf-8-sig", "engine": "python"}

    try:
        header = pd.read_csv(source, nrows=0, **options)
    except pd.errors.EmptyDataError as e:
        raise ImportSourceError(
            "Import file has no header row",
            details={"path": str(source)}
        ) from e
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        raise ImportSourceReadError(str(source), str(e)) from e

    width = len(header.columns)
    bad_lines: list[list[str]] = []

    def keep_bad_line(fields: list[str]) -> list[str]:
        bad_lines.append(fields)
        return [f"{BAD_LINE_MARKER}{len(bad_lines) - 1}"] + [""] * (width - 1)

    row_number = FIRST_DATA_ROW
    try:
        reader = pd.read_csv(
            source,
            keep_default_na=False,
            skip_blank_lines=False,
            chunksize=chunk_size,
            on_bad_lines=keep_bad_line,
            **options
        )
        with reader:
            for chunk in reader:
                headers = [_header_name(c) for c in chunk.columns]
                for values in chunk.itertuples(index=False, name=None):
                    first = values[0] if values else ""
                    if isinstance(first, str) and first.startswith(BAD_LINE_MARKER):
                        fields = bad_lines[int(first[len(BAD_LINE_MARKER):])]
                        row = _bad_line_row(row_number, headers, fields)
                    else:
                        row = RawRow(
                            row_number=row_number,
                            values={
                                h: _cell_text(v)
                                for h, v in zip(headers, values)
                                if h
                            }
                        )
                    row_number += 1
                    if row.problem or not row.is_blank():
                        yield row
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        raise ImportSourceReadError(str(source), f"row {row_number}: {e}") from e


def _bad_line_row(row_number: int, headers: list[str], fields: list[str]) -> RawRow:
    logger.warning(
        "malformed_source_line",
        row_number=row_number,
        expected=len(headers),
        found=len(fields),
        fields=fields
    )
    return RawRow(
        row_number=row_number,
        values={h: _cell_text(v) for h, v in zip(headers, fields) if h},
        problem=f"Expected {len(headers)} fields, found {len(fields)}",
        extra=[_cell_text(v) for v in fields[len(headers):]],
    )


def _iter_xlsx(source: Path) -> Iterator[RawRow]:
    try:
        workbook = load_workbook(source, read_only=True, data_only=True)
    except (OSError, zipfile.BadZipFile, InvalidFileException, KeyError) as e:
        raise ImportSourceReadError(str(source), str(e)) from e

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)

        header_cells = next(rows, None)
        if header_cells is None:
            raise ImportSourceError(
                "Import file has no header row",
                details={"path": str(source), "sheet": sheet.title}
            )
        headers = [_header_name(c) for c in header_cells]

        row_number = FIRST_DATA_ROW
        for cells in rows:
            row = RawRow(
                row_number=row_number,
                values={
                    h: _cell_text(v)
                    for h, v in zip(headers, cells)
                    if h
                }
            )
            row_number += 1
            if not row.is_blank():
                yield row
    except (OSError, zipfile.BadZipFile) as e:
        raise ImportSourceReadError(str(source), str(e)) from e
    finally:
        workbook.close()


def _header_name(value: Any) -> str:
    if value is None:
        return ""
    name = str(value).strip().lower()
    # pandas names empty header cells "Unnamed: N"
    return "" if name.startswith("unnamed:") else name


def _cell_text(value: Any) -> str:
    """Render a cell as trimmed text ('' for empty)."""
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


# ===================
# NORMALIZATION
# ===================

def normalize_row(raw: RawRow, batch_id: str) -> Union[StagingRow, RowError]:
    """
    Turn a raw source row into a staging record.

    The row becomes a RowError when the source line is malformed, the SKU
    is missing, a non-empty price is not a finite number, or a value does
    not fit its products column (price, stock, 3-letter currency). Other
    numeric cells are coerced leniently: a value that does not parse is
    left empty.

    Args:
        raw: Row from iter_source_rows
        batch_id: Import batch the row belongs to

    Returns:
        StagingRow, or RowError describing why the row is rejected
    """
    values = raw.values
    sku = clean_text(values.get("sku"))

    if raw.problem:
        return RowError(
            row_number=raw.row_number,
            sku=sku,
            field="row",
            error=raw.problem,
            raw={**values, "extra_fields": raw.extra}
        )

    if not sku:
        return RowError(
            row_number=raw.row_number,
            sku=None,
            field="sku",
            error="SKU is required",
            raw=values
        )

    price = _price_text(values)
    if price is None:
        bad_field = "price" if clean_text(values.get("price")) else PRICE_CENTS_COLUMN
        return RowError(
            row_number=raw.row_number,
            sku=sku,
            field=bad_field,
            error=f"Price is not a number: {values.get(bad_field)!r}",
            raw=values
        )

    currency = clean_text(values.get("currency"))
    stock = coerce_int(values.get("stock"))

    out_of_range = None
    if price and abs(coerce_number(price)) >= MAX_PRICE:
        out_of_range = ("price", f"Price is out of range: {price}")
    elif stock is not None and not STOCK_MIN <= stock <= STOCK_MAX:
        out_of_range = ("stock", f"Stock is out of range: {values.get('stock')}")
    elif currency and not CURRENCY_RE.match(currency):
        out_of_range = ("currency", f"Currency must be a 3-letter code: {currency!r}")

    if out_of_range:
        bad_field, error = out_of_range
        return RowError(
            row_number=raw.row_number,
            sku=sku,
            field=bad_field,
            error=error,
            raw=values
        )

    image_url = _media_value(values, "image_url", "image", sku)
    model_url = _media_value(values, "model_url", "model", sku)

    return StagingRow(
        import_batch_id=batch_id,
        row_number=raw.row_number,
        sku=sku,
        name=clean_text(values.get("name")),
        description=clean_text(values.get("description")),
        price=price,
        currency=currency.upper() if currency else None,
        stock=stock,
        image_url=image_url,
        model_url=model_url,
        categories="|".join(split_category_slugs(values.get("categories"))),
        attributes=extract_attributes(values),
    )


def extract_attributes(values: dict[str, Any]) -> dict[str, Any]:
    """
    Build the attribute map for a row.

    Starts from the JSON `attributes` cell, then adds every extra column.
    An explicit column wins over the same key inside the JSON cell.
    Numeric-looking values are stored as numbers.
    """
    attributes = parse_attributes(values.get("attributes"))

    for key, value in values.items():
        if key in STAGING_COLUMNS or key == PRICE_CENTS_COLUMN:
            continue
        text = clean_text(value)
        if text is None:
            continue
        number = coerce_number(text)
        if number is None:
            attributes[key] = text
        else:
            attributes[key] = int(number) if number.is_integer() else number

    return attributes


def _price_text(values: dict[str, Any]) -> Optional[str]:
    """
    Price as staged text.

    Returns "" when no price is supplied and None when the supplied value
    does not parse.
    """
    price = clean_text(values.get("price"))
    if price:
        return price if coerce_number(price) is not None else None

    cents = clean_text(values.get(PRICE_CENTS_COLUMN))
    if cents:
        number = coerce_number(cents)
        if number is None:
            return None
        return f"{number / 100:.2f}"

    return ""


def _media_value(
    values: dict[str, Any],
    column: str,
    role: str,
    sku: str
) -> Optional[str]:
    raw = clean_text(values.get(column))
    if raw is None:
        return None
    accepted = classify_media_url(raw, role)
    if accepted is None:
        logger.warning(
            "media_reference_discarded",
            sku=sku,
            column=column,
            value=raw
        )
    return accepted
