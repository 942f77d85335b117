"""
Row Normalization Module

Turns raw CSV rows into domain records.
Handles:
- CSV text parsing (Polars, all columns as strings)
- Currency and numeric coercion
- Order timestamp standardization
- JSON sub-fields embedded in catalog cells

Normalization is additive: raw columns are preserved in ``extras`` and a row
that cannot be normalized falls back to minimal but usable defaults.
"""

import io
import json
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import polars as pl
import structlog

from retail_analytics.models import OrderLineItem, Product

logger = structlog.get_logger(__name__)

_CURRENCY_CHARS = re.compile(r"[$€£¥,]")

_HEADER_DATETIME = re.compile(
    r"([A-Za-z]{3})\s+(\d{1,2}),\s*(\d{4}),\s*(\d{1,2}):(\d{2})\s*(AM|PM)",
    re.IGNORECASE,
)
_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_DATETIME_FORMATS = [
    "%Y-%m-%d %I:%M%p",
    "%Y-%m-%d %I:%M %p",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
]
_OUTPUT_FORMAT = "%Y-%m-%d %H:%M:%S"

_GENDER_PREFIXES = {"W'S ": "Women", "M'S ": "Men"}
_CATEGORY_KEYWORDS = [
    ("JAC-SHIRT", "Shirts"),
    ("CRUISER", "Jackets"),
    ("JACKET", "Jackets"),
    ("COAT", "Jackets"),
    ("VEST", "Jackets"),
    ("SHIRT", "Shirts"),
    ("TEE", "Shirts"),
    ("HOODIE", "Shirts"),
    ("PANT", "Bottoms"),
    ("SHORTS", "Bottoms"),
    ("BAG", "Accessories"),
    ("DUFFLE", "Accessories"),
    ("BELT", "Accessories"),
    ("SWEATER", "Sweaters"),
    ("CARDIGAN", "Sweaters"),
]
_MATERIALS = ["MACKINAW WOOL", "TIN CLOTH", "SHELTER CLOTH", "RUGGED TWILL", "CANVAS", "FLANNEL", "WOOL", "COTTON"]


def parse_csv_text(text: str) -> List[Dict[str, Any]]:
    """
    Parse CSV text into a list of row dicts.

    Every column is read as a string so that numeric coercion stays in the
    normalizers; empty cells come back as ``None``.
    """
    if not text or not text.strip():
        return []
    df = pl.read_csv(
        io.BytesIO(text.encode("utf-8")),
        infer_schema_length=0,
        truncate_ragged_lines=True,
    )
    # blank lines come back as all-null rows
    blank = pl.all_horizontal(pl.all().is_null() | (pl.all().str.strip_chars() == ""))
    return df.filter(~blank).to_dicts()


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce numbers and currency-formatted strings, ``default`` on failure"""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else default
    cleaned = _CURRENCY_CHARS.sub("", str(value)).strip()
    if not cleaned:
        return default
    try:
        number = float(cleaned)
    except ValueError:
        return default
    return number if math.isfinite(number) else default


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("true", "1", "yes", "y", "t")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first(row: Mapping[str, Any], *names: str) -> Any:
    """First non-empty value among alternative column names"""
    for name in names:
        value = row.get(name)
        if value is not None and value != "":
            return value
    return None


def parse_header_datetime(value: Any) -> Optional[str]:
    """Parse order header timestamps such as ``Dec 1, 2024, 4:54 PM PST``"""
    if not value:
        return None
    match = _HEADER_DATETIME.search(str(value))
    if not match:
        return None
    month = _MONTHS.get(match.group(1).lower())
    if month is None:
        return None
    hour = int(match.group(4))
    meridiem = match.group(6).upper()
    if meridiem == "PM" and hour < 12:
        hour += 12
    if meridiem == "AM" and hour == 12:
        hour = 0
    try:
        parsed = datetime(int(match.group(3)), month, int(match.group(2)), hour, int(match.group(5)))
    except ValueError:
        return None
    return parsed.strftime(_OUTPUT_FORMAT)


def standardize_datetime(value: Any) -> Optional[str]:
    """Normalize an order timestamp to ``YYYY-MM-DD HH:MM:SS``"""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime(_OUTPUT_FORMAT)
        except ValueError:
            continue

    try:
        return datetime.fromisoformat(text).strftime(_OUTPUT_FORMAT)
    except ValueError:
        return parse_header_datetime(text)


def _line_number(value: Any) -> int:
    number = int(to_number(value, default=1))
    return number if number >= 1 else 1


def normalize_order_row(
    row: Mapping[str, Any],
    source_month: Optional[str] = None,
    header: Optional[Mapping[str, Any]] = None,
) -> OrderLineItem:
    """
    Normalize one raw line-item row.

    Args:
        row: Raw CSV row (line item export or single-file monthly export)
        source_month: Partition tag ``yyyy-mm``
        header: Matching order header row when line items are split from orders

    Returns:
        OrderLineItem with the raw fields kept in ``extras``
    """
    header = header or {}
    extras: Dict[str, Any] = dict(row)
    for key, value in header.items():
        extras.setdefault(key, value)

    try:
        discounted = _first(row, "discounted_price", "Product Net")
        unit_price = to_number(_first(row, "unit_price", "Unit Price"))
        line_discount = to_number(_first(row, "line_discount", "Line Discount"))
        if discounted is not None:
            net_revenue = to_number(discounted)
        else:
            net_revenue = unit_price - line_discount

        raw_quantity = _first(row, "quantity", "Quantity Sold")
        quantity = to_number(raw_quantity) if raw_quantity is not None else 1.0

        order_datetime = parse_header_datetime(header.get("date_time")) if header else None
        if order_datetime is None:
            order_datetime = standardize_datetime(
                _first(row, "order_datetime_normalized", "Order Date/Time", "date_time", "order_date")
            )

        return OrderLineItem(
            order_id=_text(_first(row, "order_id", "Order ID", "Order Number")),
            line_number=_line_number(_first(row, "line_number", "Line Number")),
            product_name=_text(_first(row, "product_name", "Product Name")),
            sku=_text(_first(row, "sku", "SKU")),
            color=_text(_first(row, "color", "Color")),
            size=_text(_first(row, "size", "Size")),
            upc=_text(_first(row, "upc", "UPC")),
            quantity=quantity,
            net_revenue=net_revenue,
            unit_price=unit_price,
            line_discount=line_discount,
            taxes=to_number(_first(row, "taxes", "Taxes")),
            order_datetime_normalized=order_datetime,
            source_month=source_month,
            extras=extras,
        )
    except Exception as e:
        logger.warning(
            "Order row normalization failed, using defaults",
            error=str(e),
            order_id=row.get("order_id"),
            source_month=source_month,
        )
        return OrderLineItem(
            order_id=_text(row.get("order_id")),
            line_number=1,
            product_name=_text(row.get("product_name")),
            color=_text(row.get("color")),
            size=_text(row.get("size")),
            upc=_text(row.get("upc")),
            quantity=1,
            net_revenue=0.0,
            source_month=source_month,
            extras=extras,
        )


def order_header_meta(header_row: Mapping[str, Any]) -> Dict[str, Any]:
    """Fields carried from an order header onto its line items"""
    return {
        "date_time": header_row.get("date_time"),
        "demand_store": _text(header_row.get("demand_location")),
        "fulfillment_store": _text(header_row.get("fulfillment_location")),
        "channel": _text(header_row.get("channel")),
        "fulfillment_type": _text(header_row.get("fulfillment_type")),
    }


def _parse_json_cell(value: Any, field_name: str) -> Any:
    if not value or not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        logger.debug("Invalid JSON in catalog cell", field=field_name, error=str(e))
        return None


def _parse_images(value: Any) -> List[str]:
    parsed = _parse_json_cell(value, "images")
    if not isinstance(parsed, list):
        return []
    images = []
    for item in parsed:
        if isinstance(item, str):
            images.append(item)
        elif isinstance(item, dict) and item.get("url"):
            images.append(str(item["url"]))
    return images


def _parse_attributes(value: Any) -> Dict[str, Any]:
    parsed = _parse_json_cell(value, "extended_attributes")
    if not isinstance(parsed, list):
        return {}
    return {
        attr["name"]: attr["value"]
        for attr in parsed
        if isinstance(attr, dict) and attr.get("name") and attr.get("value") is not None
    }


def _parse_identifiers(value: Any) -> Dict[str, str]:
    parsed = _parse_json_cell(value, "external_identifiers")
    if not isinstance(parsed, list):
        return {}
    out: Dict[str, str] = {}
    for rec in parsed:
        if not isinstance(rec, dict):
            continue
        kind = str(rec.get("type") or rec.get("Type") or "").lower()
        ident = rec.get("value") or rec.get("Value")
        if kind in ("sku", "upc") and ident:
            out[kind] = str(ident)
    return out


def guess_gender(title: str) -> str:
    upper = title.upper()
    for prefix, gender in _GENDER_PREFIXES.items():
        if upper.startswith(prefix):
            return gender
    if "WOMEN'S" in upper:
        return "Women"
    if "MEN'S" in upper:
        return "Men"
    return "Unisex"


def guess_category(title: str) -> str:
    upper = title.upper()
    for keyword, category in _CATEGORY_KEYWORDS:
        if keyword in upper:
            return category
    return "Other"


def guess_material(title: str, description: str = "") -> str:
    text = f"{title} {description}".upper()
    for material in _MATERIALS:
        if material in text:
            return material
    return ""


def normalize_catalog_row(row: Mapping[str, Any]) -> Product:
    """Normalize one raw catalog row into a Product"""
    try:
        title = _text(row.get("title"))
        identifiers = _parse_identifiers(row.get("external_identifiers"))
        return Product(
            product_id=_text(row.get("product_id")),
            title=title,
            sku=identifiers.get("sku") or _text(row.get("sku")),
            upc=identifiers.get("upc") or _text(row.get("upc")),
            color=_text(_first(row, "variation_color_value", "color")),
            size=_text(_first(row, "variation_size_value", "size")),
            category=_text(row.get("category")) or guess_category(title),
            style=_text(row.get("style")),
            material=_text(row.get("material")) or guess_material(title, _text(row.get("description"))),
            gender=_text(row.get("gender")) or guess_gender(title),
            is_available=to_bool(row.get("is_available")),
            price=to_number(row.get("price")),
            images=_parse_images(row.get("images")),
            attributes=_parse_attributes(row.get("extended_attributes")),
            extras=dict(row),
        )
    except Exception as e:
        logger.warning("Catalog row normalization failed, using defaults", error=str(e))
        return Product(
            product_id=_text(row.get("product_id")),
            title=_text(row.get("title")) or "Unknown Product",
            price=to_number(row.get("price")),
            extras=dict(row),
        )
