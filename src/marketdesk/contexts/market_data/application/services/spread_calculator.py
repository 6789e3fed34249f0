from __future__ import annotations


def converted_price(*, trade_price: float, rate: float | None) -> float | None:
    """
    Local trade price expressed in the reference quote currency.

    Returns None when no rate is known or the rate is not positive.
    """
    if rate is None or rate <= 0:
        return None
    return trade_price / rate


def spread_percent(
    *,
    trade_price: float,
    reference_price: float | None,
    rate: float | None,
) -> float | None:
    """
    Cross-market spread in percent.

    Parameters:
    - trade_price: last trade price on the local exchange (local currency).
    - reference_price: last price on the reference exchange (reference quote currency).
    - rate: local-currency units per one reference quote unit.

    Returns:
    - `((trade_price / (reference_price * rate)) - 1) * 100`, or None when either input
      is missing or the denominator is not positive.

    Example:
    - trade_price=100, reference_price=0.07, rate=1350 -> 94.5 local units on the
      reference exchange -> spread ~= 5.82
    """
    if reference_price is None or rate is None:
        return None
    reference_local = reference_price * rate
    if reference_local <= 0:
        return None
    return (trade_price / reference_local - 1.0) * 100.0


def stable_coin_spread_percent(*, trade_price: float, rate: float | None) -> float | None:
    """
    Spread of the stable coin itself: its reference price is 1 quote unit by definition.

    Example: trade_price=1340, rate=1350 -> ~-0.74.
    """
    return spread_percent(trade_price=trade_price, reference_price=1.0, rate=rate)
