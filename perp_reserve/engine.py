"""
engine.py - Perpetual Tranche

Stateful facade over the pure reserve functions. Each entry point:
1. Checks the guard (pause gate, roller authorization)
2. Builds a PendingTransaction from the ledger as a read-only view
3. Executes it atomically on the AssetLedger

Query methods only read; they are safe to call for simulation.
The transaction log and event log on the ledger are the audit trail.
"""

from __future__ import annotations
from decimal import Decimal
from typing import List, Optional, Tuple

from .core import (
    Event, PricingStrategy, FeeStrategy, DepositBondRegistry,
)
from .guards import ReserveGuard
from .ledger import AssetLedger
from .redemption import compute_redemption, compute_redemption_amounts
from .reserve import load_reserve
from .rollover import (
    RolloverAmounts, compute_rollover, compute_rollover_amount, is_acceptable_for_reserve,
)


class PerpetualTranche:
    """
    Perpetual claim token backed by a reserve of tranches and rebasing collateral.

    Example:
        perp = PerpetualTranche(
            ledger, "SPOT",
            pricing_strategy=UnitPricingStrategy(),
            fee_strategy=BasicFeeStrategy("SPOT"),
            registry=registry,
        )
        assets, amounts = perp.redeem("alice", Decimal("375"))
    """

    def __init__(
        self,
        ledger: AssetLedger,
        perp_symbol: str,
        *,
        pricing_strategy: PricingStrategy,
        fee_strategy: FeeStrategy,
        registry: DepositBondRegistry,
        guard: Optional[ReserveGuard] = None,
        protocol_wallet: Optional[str] = None,
        verbose: Optional[bool] = None,
    ):
        """
        Args:
            ledger: Ledger holding the claim token and every reserve asset
            perp_symbol: Registered claim token (see create_perp_unit)
            pricing_strategy: Tranche prices for rollover
            fee_strategy: Burn fees and rollover fee percentage
            registry: Deposit bond registry for rollover validation
            guard: Pause gate and roller authorization (none if omitted)
            protocol_wallet: Recipient of protocol fees
            verbose: Print a line per operation (defaults to ledger.verbose)
        """
        self.ledger = ledger
        self.perp_symbol = perp_symbol
        self.pricing_strategy = pricing_strategy
        self.fee_strategy = fee_strategy
        self.registry = registry
        self.guard = guard
        self.protocol_wallet = protocol_wallet
        self.verbose = ledger.verbose if verbose is None else verbose
        # Fail fast on a symbol that is not a claim token
        load_reserve(ledger, perp_symbol)

    # ========================================================================
    # ENTRY POINTS
    # ========================================================================

    def redeem(self, account: str, burn_amount: Decimal) -> Tuple[Tuple[str, ...], Tuple[Decimal, ...]]:
        """
        Burn burn_amount claim tokens and release account's share of the reserve.

        Returns:
            (assets, amounts) released, in reserve order

        Raises:
            Paused, UnacceptableBurnAmt, ExpectedSupplyReduction,
            InsufficientBalance, InsufficientAllowance
        """
        if self.guard is not None:
            self.guard.check_not_paused()
        assets, amounts = compute_redemption_amounts(self.ledger, self.perp_symbol, burn_amount)
        pending = compute_redemption(
            self.ledger, self.perp_symbol, account, burn_amount,
            self.fee_strategy, self.protocol_wallet,
        )
        self.ledger.execute(pending)
        if self.verbose:
            released = ", ".join(f"{a} {q}" for a, q in zip(assets, amounts))
            print(f"[REDEEM] {account} burnt {burn_amount} {self.perp_symbol}: {released}")
        return assets, amounts

    def rollover(
        self,
        account: str,
        token_in: str,
        token_out: str,
        requested: Decimal,
    ) -> RolloverAmounts:
        """
        Swap up to requested of token_in for token_out from the reserve.

        Returns:
            RolloverAmounts actually exchanged; zero amounts are a no-op

        Raises:
            Paused, UnauthorizedCall, UnacceptableRollover,
            InsufficientBalance, InsufficientAllowance
        """
        if self.guard is not None:
            self.guard.check_not_paused()
            self.guard.check_roller(account)
        amounts = self.compute_rollover_amount(token_in, token_out, requested)
        pending = compute_rollover(
            self.ledger, self.perp_symbol, account, self.registry,
            self.pricing_strategy, self.fee_strategy,
            token_in, token_out, requested,
        )
        self.ledger.execute(pending)
        if self.verbose:
            print(f"[ROLLOVER] {account}: {amounts.tranche_in_amount} {token_in} -> "
                  f"{amounts.token_out_amount} {token_out}")
        return amounts

    # ========================================================================
    # QUERY METHODS
    # ========================================================================

    def compute_redemption_amounts(self, burn_amount: Decimal) -> Tuple[Tuple[str, ...], Tuple[Decimal, ...]]:
        return compute_redemption_amounts(self.ledger, self.perp_symbol, burn_amount)

    def compute_rollover_amount(
        self,
        token_in: str,
        token_out: str,
        requested: Decimal,
        max_token_out: Optional[Decimal] = None,
    ) -> RolloverAmounts:
        return compute_rollover_amount(
            self.ledger, self.perp_symbol, self.registry,
            self.pricing_strategy, self.fee_strategy,
            token_in, token_out, requested, max_token_out,
        )

    def reserve_assets(self) -> Tuple[str, ...]:
        """Reserve assets in reserve order, collateral first."""
        return load_reserve(self.ledger, self.perp_symbol)[1].assets

    def reserve_balance(self, asset_symbol: str) -> Decimal:
        return load_reserve(self.ledger, self.perp_symbol)[1].balance_of(asset_symbol)

    def mature_tranche_balance(self) -> Decimal:
        """Notional (par) balance of the collateral."""
        return load_reserve(self.ledger, self.perp_symbol)[1].mature_tranche_balance

    def total_supply(self) -> Decimal:
        return self.ledger.total_supply(self.perp_symbol)

    def is_acceptable_for_reserve(self, asset_symbol: str) -> bool:
        terms, _ = load_reserve(self.ledger, self.perp_symbol)
        return is_acceptable_for_reserve(self.registry, terms, asset_symbol)

    def events(self) -> List[Event]:
        """Every event emitted on the ledger so far."""
        return list(self.ledger.event_log)
