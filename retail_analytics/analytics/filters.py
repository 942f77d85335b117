"""
Row Filters

Row-level time and product filters applied after months are loaded. The
repository works at month granularity; these narrow to exact dates and
product facets.
"""

from typing import List, Optional, Sequence

from retail_analytics.models import OrderLineItem
from retail_analytics.query import ProductFilter, TimeRange


def apply_time(rows: Sequence[OrderLineItem], time: Optional[TimeRange]) -> List[OrderLineItem]:
    """
    Keep rows whose order date lies in ``[start_date, end_date]``.

    Without both dates every row is kept; rows with no order date are kept.
    """
    if time is None or not time.start_date or not time.end_date:
        return list(rows)
    return [
        row
        for row in rows
        if row.order_date is None or time.start_date <= row.order_date <= time.end_date
    ]


def _values(values: Optional[Sequence[str]]) -> List[str]:
    return [v for v in values or () if v]


def apply_product(rows: Sequence[OrderLineItem], product: Optional[ProductFilter]) -> List[OrderLineItem]:
    """
    Keep rows matching every set product facet.

    ``text`` is a case-insensitive substring of the product name. ``ids`` are
    exact product names unless ``ax_item_numbers`` are given, which match the
    raw ``ax_item_number`` column instead.
    """
    if product is None:
        return list(rows)

    text = (product.text or "").strip().lower()
    skus = _values(product.skus)
    ids = _values(product.ids)
    colors = _values(product.colors)
    sizes = _values(product.sizes)
    item_numbers = _values((product.model_extra or {}).get("ax_item_numbers"))

    kept = []
    for row in rows:
        if text and text not in row.product_name.lower():
            continue
        if skus and row.sku not in skus:
            continue
        if item_numbers:
            if row.get("ax_item_number") not in item_numbers:
                continue
        elif ids and row.product_name not in ids:
            continue
        if colors and row.color not in colors:
            continue
        if sizes and row.size not in sizes:
            continue
        kept.append(row)
    return kept
