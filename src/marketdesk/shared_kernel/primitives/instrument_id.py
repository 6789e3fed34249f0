from __future__ import annotations

from dataclasses import dataclass

from .symbol import Symbol


@dataclass(frozen=True, slots=True)
class InstrumentId:
    """
    InstrumentId — exchange-qualified market code: (quote, base).

    String form is `"{quote}-{base}"`, e.g. `KRW-BTC` is BTC priced in KRW.
    """

    quote: Symbol
    base: Symbol

    def __post_init__(self) -> None:
        if self.quote is None:  # type: ignore[truthy-bool]
            raise ValueError("InstrumentId requires quote")
        if self.base is None:  # type: ignore[truthy-bool]
            raise ValueError("InstrumentId requires base")

    @classmethod
    def parse(cls, market_code: str) -> InstrumentId:
        quote, sep, base = market_code.strip().partition("-")
        if not sep:
            raise ValueError(f"market code must look like 'QUOTE-BASE', got {market_code!r}")
        return cls(quote=Symbol(quote), base=Symbol(base))

    def as_dict(self) -> dict:
        return {"quote": str(self.quote), "base": str(self.base)}

    def __str__(self) -> str:
        return f"{self.quote}-{self.base}"
