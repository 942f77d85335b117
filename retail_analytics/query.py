"""
Query Models

Validated query input for the analytics pipeline, accepting the external
camelCase keys (``startYYYYMM``, ``endDate``...) as well as snake_case.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_TIME_ALIASES = {
    "start_yyyymm": ("start_yyyymm", "startYYYYMM", "start"),
    "end_yyyymm": ("end_yyyymm", "endYYYYMM", "end"),
    "start_date": ("start_date", "startDate"),
    "end_date": ("end_date", "endDate"),
}

# yyyy-m or yyyy-mm, optionally followed by a day or time part
_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})(?:$|[-T ])")


def _truncate(value: Any, length: int) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.isoformat()[:length]
    return str(value)[:length]


def _to_month_key(value: Any) -> Optional[str]:
    """Zero-padded ``yyyy-mm`` from a date, a month key or a longer date string"""
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return month_key_of(value)
    match = _MONTH_PATTERN.match(str(value).strip())
    if not match:
        raise ValueError(f"expected yyyy-mm, got {value!r}")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"month out of range in {value!r}")
    return f"{year:04d}-{month:02d}"


def month_key_of(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def shift_month(d: date, months: int) -> date:
    """First day of the month ``months`` away from ``d``'s month"""
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def months_between(start_yyyymm: str, end_yyyymm: str) -> List[str]:
    """Every ``yyyy-mm`` key from start to end inclusive"""
    start = date(int(start_yyyymm[:4]), int(start_yyyymm[5:7]), 1)
    end = date(int(end_yyyymm[:4]), int(end_yyyymm[5:7]), 1)
    out = []
    current = start
    while current <= end:
        out.append(month_key_of(current))
        current = shift_month(current, 1)
    return out


class TimeRange(BaseModel):
    """Month range driving partition loading, optional dates for row filtering"""

    model_config = ConfigDict(frozen=True)

    start_yyyymm: str = Field(description="First month, yyyy-mm")
    end_yyyymm: str = Field(description="Last month, yyyy-mm")
    start_date: Optional[str] = Field(default=None, description="First day, yyyy-mm-dd")
    end_date: Optional[str] = Field(default=None, description="Last day, yyyy-mm-dd")

    @model_validator(mode="before")
    @classmethod
    def accept_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out: Dict[str, Any] = {}
        for name, aliases in _TIME_ALIASES.items():
            for alias in aliases:
                if data.get(alias) not in (None, ""):
                    out[name] = data[alias]
                    break
        return out

    @field_validator("start_yyyymm", "end_yyyymm", mode="before")
    @classmethod
    def to_month(cls, v: Any) -> Optional[str]:
        return _to_month_key(v)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def to_day(cls, v: Any) -> Optional[str]:
        return _truncate(v, 10)

    @model_validator(mode="after")
    def check_order(self) -> "TimeRange":
        if self.start_yyyymm > self.end_yyyymm:
            raise ValueError(f"start {self.start_yyyymm} is after end {self.end_yyyymm}")
        return self

    @property
    def key(self) -> str:
        return f"{self.start_yyyymm}-{self.end_yyyymm}"

    def months(self) -> List[str]:
        return months_between(self.start_yyyymm, self.end_yyyymm)

    @classmethod
    def last_months(cls, count: int, today: Optional[date] = None) -> "TimeRange":
        """Range covering the current month and the ``count - 1`` before it"""
        today = today or date.today()
        start = shift_month(today, -(max(count, 1) - 1))
        return cls(start_yyyymm=month_key_of(start), end_yyyymm=month_key_of(today))


class ProductFilter(BaseModel):
    """Product-level filters applied to order rows"""

    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None
    skus: Optional[List[str]] = None
    ids: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    sizes: Optional[List[str]] = None

    def search_terms(self) -> List[str]:
        """Lower-cased whitespace-separated terms of ``text``"""
        return [t for t in (self.text or "").lower().split() if t]


class Query(BaseModel):
    """An analytics question: time window, product filter, requested metrics"""

    time: Optional[TimeRange] = None
    product: Optional[ProductFilter] = None
    metric: Optional[List[str]] = None

    @field_validator("time", mode="before")
    @classmethod
    def drop_incomplete_time(cls, v: Any) -> Any:
        if isinstance(v, dict):
            has_start = any(v.get(a) for a in _TIME_ALIASES["start_yyyymm"])
            has_end = any(v.get(a) for a in _TIME_ALIASES["end_yyyymm"])
            if not (has_start and has_end):
                return None
        return v

    @field_validator("metric", mode="before")
    @classmethod
    def wrap_metric(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        if isinstance(v, str):
            return [v]
        return list(v)


QueryInput = Union[Query, Dict[str, Any], None]


def normalize_query(partial: QueryInput) -> Query:
    """Validate a partial query (dict or Query) into a Query"""
    if partial is None:
        return Query()
    if isinstance(partial, Query):
        return partial
    return Query.model_validate(partial)


def merge_queries(prev: QueryInput, applied: QueryInput) -> Query:
    """
    Merge an applied query over a previous one.

    ``time`` and ``metric`` are replaced when the applied query sets them;
    ``product`` is merged key by key so earlier facet selections survive.
    """
    base = normalize_query(prev)
    inc = normalize_query(applied)

    product = None
    if base.product or inc.product:
        merged: Dict[str, Any] = {}
        if base.product:
            merged.update(base.product.model_dump(exclude_none=True))
        if inc.product:
            merged.update(inc.product.model_dump(exclude_none=True))
        product = ProductFilter.model_validate(merged)

    return Query(
        time=inc.time or base.time,
        metric=inc.metric or base.metric,
        product=product,
    )
