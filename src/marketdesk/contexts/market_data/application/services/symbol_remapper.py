from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from marketdesk.shared_kernel.primitives import Symbol


@dataclass(frozen=True, slots=True)
class SymbolRemapper:
    """
    Maps a local base asset onto the symbol used by the reference exchange.

    Parameters:
    - symbol_map: local base -> reference base, e.g. `{"BTT": "BTTC"}`.
    - reference_quote: quote asset appended to build the reference key, e.g. `USDT`.

    Assumptions/Invariants:
    - Unmapped symbols map onto themselves.
    - Keys and values are normalized to upper case.
    """

    reference_quote: str
    symbol_map: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        quote = self.reference_quote.strip().upper()
        if not quote:
            raise ValueError("SymbolRemapper requires non-empty reference_quote")
        object.__setattr__(self, "reference_quote", quote)

        normalized: dict[str, str] = {}
        for raw_key, raw_value in self.symbol_map.items():
            key = str(Symbol(str(raw_key)))
            value = str(Symbol(str(raw_value)))
            normalized[key] = value
        object.__setattr__(self, "symbol_map", normalized)

    def reference_symbol(self, base: Symbol) -> str:
        return self.symbol_map.get(str(base), str(base))

    def reference_key(self, base: Symbol) -> str:
        return f"{self.reference_symbol(base)}{self.reference_quote}"
