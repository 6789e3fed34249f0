"""
Market board API route.
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from apps.api.dto import BoardResponse, build_board_response
from marketdesk.contexts.market_data.application.services import (
    PAGE_SIZES,
    MarketBoardAggregator,
    SortField,
    SortOrder,
    SortSpec,
    paginate,
    sort_records,
)
from marketdesk.platform.errors import MarketDeskError

_PAGE_SIZE_ALL = "all"


def build_board_router(*, aggregator: MarketBoardAggregator) -> APIRouter:
    """
    Build the market board router.

    Args:
        aggregator: Board aggregator owning the current snapshot.
    Returns:
        APIRouter: Router with `GET /board`.
    Assumptions:
        The route only reads the current immutable snapshot; it never triggers a poll.
    Raises:
        ValueError: If `aggregator` is missing.
    Side Effects:
        None.
    """
    if aggregator is None:  # type: ignore[truthy-bool]
        raise ValueError("build_board_router requires aggregator")

    router = APIRouter(tags=["board"])

    @router.get("/board", response_model=BoardResponse)
    def get_board(
        sort: SortField = Query(default=SortField.TRADE_VALUE),
        order: SortOrder = Query(default=SortOrder.DESC),
        page: int = Query(default=1, ge=1),
        page_size: str = Query(default=str(PAGE_SIZES[0])),
        toggle: SortField | None = Query(default=None),
    ) -> BoardResponse:
        """
        Return one sorted page of the current board snapshot.

        Args:
            sort: Sort column.
            order: Sort direction.
            page: 1-based page number.
            page_size: One of `30`, `50`, `100` or `all`.
            toggle: Column the consumer clicked; applies `SortSpec.toggled` to `sort`/`order`.
        Returns:
            BoardResponse: Snapshot state, the applied ordering and the requested page.
        Assumptions:
            A loading board returns `is_loading=true` and no items.
        Raises:
            MarketDeskError: `validation_error` for an unsupported page size.
        Side Effects:
            None.
        """
        snapshot = aggregator.current_snapshot()
        spec = SortSpec(field=sort, order=order)
        if toggle is not None:
            spec = spec.toggled(toggle)
        records = sort_records(snapshot.records, spec)
        result = paginate(records, page=page, page_size=_parse_page_size(page_size))
        return build_board_response(snapshot=snapshot, page=result, sort=spec)

    return router


def _parse_page_size(raw: str) -> int | None:
    text = raw.strip().lower()
    if text == _PAGE_SIZE_ALL:
        return None
    if text.isdigit() and int(text) in PAGE_SIZES:
        return int(text)
    raise MarketDeskError(
        code="validation_error",
        message="Unsupported page size",
        details={
            "errors": [
                {
                    "path": "query.page_size",
                    "code": "unsupported_page_size",
                    "message": f"page_size must be one of {[*PAGE_SIZES, _PAGE_SIZE_ALL]}",
                }
            ]
        },
    )


__all__ = ["build_board_router"]
