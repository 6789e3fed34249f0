from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from marketdesk.contexts.market_data.application.dto import UnifiedRecord

PAGE_SIZES = (30, 50, 100)


class SortField(str, Enum):
    TRADE_VALUE = "trade_value"
    PRICE = "price"
    CHANGE = "change"
    SPREAD = "spread"
    NONE = "none"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
    NONE = "none"


_SORT_KEYS: dict[SortField, Callable[[UnifiedRecord], float]] = {
    SortField.TRADE_VALUE: lambda r: r.ticker.acc_trade_price_24h,
    SortField.PRICE: lambda r: r.ticker.trade_price,
    SortField.CHANGE: lambda r: r.ticker.signed_change_rate,
    SortField.SPREAD: lambda r: r.spread_percent if r.spread_percent is not None else 0.0,
}


@dataclass(frozen=True, slots=True)
class SortSpec:
    """
    Board ordering selected by the consumer.

    `field=NONE` or `order=NONE` keeps the incoming order.
    """

    field: SortField = SortField.TRADE_VALUE
    order: SortOrder = SortOrder.DESC

    @property
    def is_unsorted(self) -> bool:
        return self.field is SortField.NONE or self.order is SortOrder.NONE

    def toggled(self, field: SortField) -> SortSpec:
        """
        Next spec after the consumer clicks the `field` column.

        A new column starts descending; the same column cycles desc -> asc -> unsorted,
        except trade value which cycles desc <-> asc only.
        """
        if field is SortField.NONE:
            return SortSpec(SortField.NONE, SortOrder.NONE)
        if self.field is not field:
            return SortSpec(field, SortOrder.DESC)
        if self.order is SortOrder.DESC:
            return SortSpec(field, SortOrder.ASC)
        if self.order is SortOrder.ASC:
            if field is SortField.TRADE_VALUE:
                return SortSpec(field, SortOrder.DESC)
            return SortSpec(SortField.NONE, SortOrder.NONE)
        return SortSpec(field, SortOrder.DESC)


@dataclass(frozen=True, slots=True)
class RecordPage:
    items: tuple[UnifiedRecord, ...]
    page: int
    page_size: int | None
    total: int
    total_pages: int


def sort_records(records: Sequence[UnifiedRecord], spec: SortSpec) -> tuple[UnifiedRecord, ...]:
    """
    Order board records by `spec`.

    Parameters:
    - records: records in their incoming order.
    - spec: field/order selection.

    Returns:
    - New tuple; the input is not modified.

    Assumptions/Invariants:
    - Sorting is stable: equal keys keep their incoming order.
    - Records without a spread sort as a spread of 0.
    """
    if spec.is_unsorted:
        return tuple(records)
    key = _SORT_KEYS[spec.field]
    return tuple(sorted(records, key=key, reverse=spec.order is SortOrder.DESC))


def paginate(
    records: Sequence[UnifiedRecord],
    *,
    page: int = 1,
    page_size: int | None = PAGE_SIZES[0],
) -> RecordPage:
    """
    Slice one 1-based page out of `records`.

    `page_size=None` returns every record on a single page. A page past the end is empty.
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size is not None and page_size <= 0:
        raise ValueError(f"page_size must be > 0, got {page_size}")

    total = len(records)
    if page_size is None:
        items = tuple(records) if page == 1 else ()
        return RecordPage(items=items, page=page, page_size=None, total=total, total_pages=1)

    start = (page - 1) * page_size
    return RecordPage(
        items=tuple(records[start : start + page_size]),
        page=page,
        page_size=page_size,
        total=total,
        total_pages=max(1, math.ceil(total / page_size)),
    )
