from __future__ import annotations

from dataclasses import dataclass

from marketdesk.shared_kernel.primitives import InstrumentId


@dataclass(frozen=True, slots=True)
class Instrument:
    """
    Catalog entry: market code plus display metadata.

    Invariants:
    - `instrument_id` is the join key for ticker rows; names are display-only.
    """

    instrument_id: InstrumentId
    local_name: str
    reference_name: str

    def __post_init__(self) -> None:
        if self.instrument_id is None:  # type: ignore[truthy-bool]
            raise ValueError("Instrument requires instrument_id")
        object.__setattr__(self, "local_name", self.local_name.strip())
        object.__setattr__(self, "reference_name", self.reference_name.strip())
