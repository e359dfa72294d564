"""
risk.pips
---------
Single home for price <-> pip conversion.

Pip counts are rounded to PIP_DECIMALS places and price levels to
PRICE_DECIMALS places, so 1.1030 - 1.1000 is exactly 30.0 pips and
1.1000 - 15 pips is exactly 1.0985 rather than 1.0984999999999998.
"""

from dataclasses import dataclass

PIP_DECIMALS = 6
PRICE_DECIMALS = 10


def round_price(x: float) -> float:
    return round(float(x), PRICE_DECIMALS)


@dataclass(frozen=True)
class PipConfig:
    pip_size: float = 0.0001
    pip_value: float = 0.10    # account currency per pip per unit

    def __post_init__(self):
        if self.pip_size <= 0 or self.pip_value <= 0:
            raise ValueError("pip_size and pip_value must be positive")

    def to_pips(self, price_delta: float) -> float:
        return round(price_delta / self.pip_size, PIP_DECIMALS)

    def to_price(self, pips: float) -> float:
        return round_price(pips * self.pip_size)

    def pnl(self, pips: float, units: float = 1.0) -> float:
        return round(pips * self.pip_value * units, PIP_DECIMALS)


DEFAULT_PIPS = PipConfig()


def price_to_pips(price_delta: float, pips: PipConfig = DEFAULT_PIPS) -> float:
    return pips.to_pips(price_delta)


def pips_to_price(n_pips: float, pips: PipConfig = DEFAULT_PIPS) -> float:
    return pips.to_price(n_pips)
