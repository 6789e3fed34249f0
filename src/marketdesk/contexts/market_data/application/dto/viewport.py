from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class LogicalRange:
    """
    Visible window as bar positions of the rendered series.

    Positions are floats: a renderer may scroll past either edge, so `from_index` can be
    negative and `to_index` can exceed the last bar index.
    """

    from_index: float
    to_index: float

    def __post_init__(self) -> None:
        if self.from_index > self.to_index:
            raise ValueError(
                f"LogicalRange requires from_index <= to_index, got {self.from_index} > {self.to_index}"  # noqa: E501
            )
