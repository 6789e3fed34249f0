"""
Pydantic API models and converters for the market board endpoint.
"""

from __future__ import annotations

from pydantic import BaseModel

from marketdesk.contexts.market_data.application.dto import BoardSnapshot, UnifiedRecord
from marketdesk.contexts.market_data.application.services import RecordPage, SortSpec


class BoardRecordResponse(BaseModel):
    """
    API item payload for one board row.
    """

    market: str
    local_name: str
    reference_name: str
    trade_price: float
    high_price: float
    low_price: float
    change: str
    signed_change_price: float
    signed_change_rate: float
    acc_trade_price_24h: float
    acc_trade_volume_24h: float
    timestamp: str
    rate: float | None
    reference_price: float | None
    converted_price: float | None
    spread_percent: float | None


class BoardResponse(BaseModel):
    """
    API response wrapper for `GET /board`.
    """

    is_loading: bool
    error: str | None
    stale_sources: list[str]
    rate: float | None
    generated_at: str | None
    sort: str
    order: str
    page: int
    page_size: int | None
    total: int
    total_pages: int
    items: list[BoardRecordResponse]


def build_board_response(
    *,
    snapshot: BoardSnapshot,
    page: RecordPage,
    sort: SortSpec,
) -> BoardResponse:
    """
    Convert a board snapshot page into API response payload.

    Parameters:
    - snapshot: board snapshot the page was cut from.
    - page: sorted and paginated records.
    - sort: applied ordering.

    Returns:
    - `BoardResponse` with deterministic item mapping.

    Assumptions/Invariants:
    - `stale_sources` is rendered sorted.

    Errors/Exceptions:
    - None.

    Side effects:
    - None.
    """
    return BoardResponse(
        is_loading=snapshot.is_loading,
        error=snapshot.error.value if snapshot.error is not None else None,
        stale_sources=sorted(snapshot.stale_sources),
        rate=snapshot.rate,
        generated_at=str(snapshot.generated_at) if snapshot.generated_at is not None else None,
        sort=sort.field.value,
        order=sort.order.value,
        page=page.page,
        page_size=page.page_size,
        total=page.total,
        total_pages=page.total_pages,
        items=[_build_record_response(record) for record in page.items],
    )


def _build_record_response(record: UnifiedRecord) -> BoardRecordResponse:
    return BoardRecordResponse(**record.as_dict())
