from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Symbol:
    """
    Symbol — an asset ticker on one exchange (e.g. "BTC", "USDT", "BTTC").

    Rules:
    - normalization: strip + upper
    - after normalization the value is non-empty and contains no market separator
    """

    value: str

    def __post_init__(self) -> None:
        normalized = self.value.strip().upper()
        object.__setattr__(self, "value", normalized)

        if not normalized:
            raise ValueError("Symbol must be non-empty after normalization")
        if "-" in normalized:
            raise ValueError(f"Symbol must not contain '-', got {normalized!r}")

    def __str__(self) -> str:
        return self.value
