"""
strategies.py - Pricing and fee strategies consumed by the reserve engine

The engine treats these as external oracles and only calls them through the
PricingStrategy and FeeStrategy protocols in core.py.

Classes:
- UnitPricingStrategy: every tranche priced at par (1)
- StaticPricingStrategy: fixed per-asset prices, 0 for unknown assets
- BasicFeeStrategy: signed percentage fees in a configured fee token
"""

from decimal import Decimal, ROUND_DOWN
from typing import Dict

from .core import FeeQuote, ONE, ZERO
from .fixed_point import mul, to_fixed


class UnitPricingStrategy:
    """Prices every tranche at 1."""

    def compute_price(self, asset_symbol: str) -> Decimal:
        return ONE

    def __repr__(self):
        return "UnitPricingStrategy()"


class StaticPricingStrategy:
    """
    Pricing strategy with static prices.

    Unknown assets price at 0, which the rollover engine treats as untradeable.
    """

    def __init__(self, prices: Dict[str, Decimal]):
        """
        Args:
            prices: Dictionary mapping tranche symbols to non-negative prices
        """
        self.prices: Dict[str, Decimal] = {}
        self.update_prices(prices)

    def compute_price(self, asset_symbol: str) -> Decimal:
        return self.prices.get(asset_symbol, ZERO)

    def update_price(self, asset_symbol: str, price: Decimal):
        """Update the price of an asset."""
        if not isinstance(price, Decimal):
            price = Decimal(str(price))
        if price < ZERO:
            raise ValueError(f"Price of {asset_symbol} must be non-negative, got {price}")
        self.prices[asset_symbol] = to_fixed(price)

    def update_prices(self, prices: Dict[str, Decimal]):
        """Update multiple prices at once."""
        for asset_symbol, price in prices.items():
            self.update_price(asset_symbol, price)

    def __repr__(self):
        return f"StaticPricingStrategy({len(self.prices)} prices)"


class BasicFeeStrategy:
    """
    Fees as signed percentages of the amount, settled in one fee token.

    The fee token may be the claim token itself (native settlement) or any
    other registered asset (external settlement).

    Example:
        fees = BasicFeeStrategy("SPOT", burn_fee_perc=Decimal("0.01"))
        fees.compute_burn_fee(Decimal("500"))  # FeeQuote(amount=5, asset="SPOT")
    """

    def __init__(
        self,
        fee_token: str,
        burn_fee_perc: Decimal = ZERO,
        rollover_fee_perc: Decimal = ZERO,
        protocol_fee_perc: Decimal = ZERO,
    ):
        """
        Args:
            fee_token: Asset fees are settled in
            burn_fee_perc: Signed burn fee; negative pays a rebate
            rollover_fee_perc: Signed rollover fee, at most 1
            protocol_fee_perc: Non-negative share of the burn forwarded to the protocol
        """
        burn_fee_perc = Decimal(str(burn_fee_perc))
        rollover_fee_perc = Decimal(str(rollover_fee_perc))
        protocol_fee_perc = Decimal(str(protocol_fee_perc))
        if rollover_fee_perc > ONE:
            raise ValueError(f"rollover_fee_perc must be at most 1, got {rollover_fee_perc}")
        if protocol_fee_perc < ZERO:
            raise ValueError(f"protocol_fee_perc must be non-negative, got {protocol_fee_perc}")
        self.fee_token = fee_token
        self.burn_fee_perc = burn_fee_perc
        self.rollover_fee_perc = rollover_fee_perc
        self.protocol_fee_perc = protocol_fee_perc

    def compute_burn_fee(self, amount: Decimal) -> FeeQuote:
        """Fee for burning amount claim tokens, truncated toward zero."""
        return FeeQuote(
            amount=mul(amount, self.burn_fee_perc, ROUND_DOWN),
            asset=self.fee_token,
            protocol_amount=mul(amount, self.protocol_fee_perc, ROUND_DOWN),
        )

    def compute_rollover_fee_perc(self) -> Decimal:
        return self.rollover_fee_perc

    def __repr__(self):
        return (f"BasicFeeStrategy({self.fee_token}, burn={self.burn_fee_perc}, "
                f"rollover={self.rollover_fee_perc}, protocol={self.protocol_fee_perc})")
