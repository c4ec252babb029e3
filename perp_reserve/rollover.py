"""
rollover.py - Price- and Fee-Adjusted Reserve Rollover

A rollover swaps an accepted incoming tranche for an asset already in the
reserve. With prices p_in, p_out and signed fee percentage f:

    out0 = floor(requested * p_in / p_out)
    f >= 0:  out1 = floor(out0 * (1 - f)),  in1 = requested
    f <  0:  out1 = out0,                   in1 = ceil(requested / (1 - f))

If out1 exceeds the coverage A = min(reserve balance, max_token_out), the
output is capped at A and the input recomputed backward:

    in = ceil(A * p_out / (p_in * (1 - f)))

The backward formula divides by (1 - f) for either fee sign. The collateral
is always priced at 1; rebases change its balance, not its price.

Functions:
1. calculate_rollover_amount() - pure (requested, prices, fee, cap) -> amounts
2. validate_rollover()         - UnacceptableRollover checks
3. compute_rollover_amount()   - side-effect-free query against a view
4. compute_rollover()          - PendingTransaction for a rollover
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING
from typing import List, Optional

from .core import (
    AssetView, Move, PendingTransaction, AssetStateChange, Event,
    PricingStrategy, FeeStrategy, DepositBondRegistry,
    TransactionOrigin, OriginType, UpdatedMatureTrancheBalance,
    UnacceptableRollover, AssetNotRegistered,
    ASSET_TYPE_TRANCHE, COLLATERAL_PRICE, ONE, ZERO,
    build_transaction, empty_pending_transaction,
)
from .fixed_point import div, mul, mul_div, mul_div_div, to_fixed
from .reserve import PerpTerms, ReserveLedger, load_reserve, to_state_dict


@dataclass(frozen=True, slots=True)
class RolloverAmounts:
    """Amounts exchanged by one rollover."""
    token_out_amount: Decimal
    tranche_in_amount: Decimal

    def is_zero(self) -> bool:
        return self.tranche_in_amount == ZERO


NO_ROLLOVER = RolloverAmounts(ZERO, ZERO)


# ============================================================================
# PURE CALCULATION
# ============================================================================

def calculate_rollover_amount(
    requested: Decimal,
    price_in: Decimal,
    price_out: Decimal,
    fee_perc: Decimal,
    coverage: Decimal,
) -> RolloverAmounts:
    """
    Final (token_out_amount, tranche_in_amount) for a rollover request.

    Args:
        requested: Incoming tranche amount offered by the caller
        price_in: Price of the incoming tranche
        price_out: Price of the outgoing asset
        fee_perc: Signed fee percentage, at most 1
        coverage: Most the reserve can deliver of the outgoing asset

    Returns:
        NO_ROLLOVER when requested is zero or either price is zero

    Raises:
        ValueError: Negative inputs or fee_perc above 1
    """
    if fee_perc > ONE:
        raise ValueError(f"Rollover fee percentage must be at most 1, got {fee_perc}")
    if requested < ZERO or coverage < ZERO or price_in < ZERO or price_out < ZERO:
        raise ValueError("Rollover amounts and prices must be non-negative")
    if requested == ZERO or price_in == ZERO or price_out == ZERO:
        return NO_ROLLOVER

    fee_divisor = ONE - fee_perc
    token_out = mul_div(requested, price_in, price_out)
    if fee_perc >= ZERO:
        token_out = mul(token_out, fee_divisor)
        tranche_in = to_fixed(requested)
    else:
        tranche_in = div(requested, fee_divisor, ROUND_CEILING)

    if token_out <= coverage:
        return RolloverAmounts(token_out, tranche_in)

    # fee_divisor > 0 here: with f == 1 the output is 0 and always covered
    return RolloverAmounts(
        token_out_amount=to_fixed(coverage),
        tranche_in_amount=mul_div_div(coverage, price_out, price_in, fee_divisor, ROUND_CEILING),
    )


# ============================================================================
# VALIDATION
# ============================================================================

def is_acceptable_for_reserve(
    registry: DepositBondRegistry,
    terms: PerpTerms,
    asset_symbol: str,
) -> bool:
    """True if asset is the accepted tranche class of the current deposit bond."""
    return registry.deposit_bond().tranche_index(asset_symbol) == terms.accepted_tranche_index


def _declared_bond(view: AssetView, asset_symbol: str) -> Optional[str]:
    try:
        asset = view.get_asset(asset_symbol)
    except AssetNotRegistered:
        return None
    if asset.asset_type != ASSET_TYPE_TRANCHE:
        return None
    return view.get_asset_state(asset_symbol).get('bond')


def validate_rollover(
    view: AssetView,
    terms: PerpTerms,
    reserve: ReserveLedger,
    registry: DepositBondRegistry,
    token_in: str,
    token_out: str,
) -> None:
    """
    Raises:
        UnacceptableRollover: if token_in is not the accepted class of the
            registry's deposit bond, token_out is not in the reserve or is itself
            acceptable, or both belong to the same bond
    """
    deposit_bond = registry.deposit_bond()
    bond_in = _declared_bond(view, token_in)
    if bond_in is None:
        raise UnacceptableRollover(f"{token_in} is not a tranche")
    if bond_in != deposit_bond.symbol:
        raise UnacceptableRollover(f"{token_in} is not a tranche of deposit bond {deposit_bond.symbol}")
    # The declared bond is caller-controlled; the registry's tranche list is not
    if deposit_bond.tranche_index(token_in) is None:
        raise UnacceptableRollover(f"{token_in} is not listed by bond {deposit_bond.symbol}")
    if not is_acceptable_for_reserve(registry, terms, token_in):
        raise UnacceptableRollover(f"{token_in} is not the accepted tranche class")

    if token_out not in reserve:
        raise UnacceptableRollover(f"{token_out} is not in the reserve")
    if is_acceptable_for_reserve(registry, terms, token_out):
        raise UnacceptableRollover(f"{token_out} is still acceptable for the reserve")
    if token_out != terms.collateral:
        if deposit_bond.tranche_index(token_out) is not None or _declared_bond(view, token_out) == bond_in:
            raise UnacceptableRollover(f"{token_in} and {token_out} belong to the same bond")


# ============================================================================
# QUERIES AND TRANSACTIONS
# ============================================================================

def _resolve_price(pricing_strategy: PricingStrategy, terms: PerpTerms, asset_symbol: str) -> Decimal:
    if asset_symbol == terms.collateral:
        return COLLATERAL_PRICE
    return pricing_strategy.compute_price(asset_symbol)


def _rollover_amounts(
    terms: PerpTerms,
    reserve: ReserveLedger,
    pricing_strategy: PricingStrategy,
    fee_strategy: FeeStrategy,
    token_in: str,
    token_out: str,
    requested: Decimal,
    max_token_out: Optional[Decimal],
) -> RolloverAmounts:
    requested = to_fixed(requested)
    if requested == ZERO:
        return NO_ROLLOVER
    coverage = reserve.balance_of(token_out)
    if max_token_out is not None:
        coverage = min(coverage, to_fixed(max_token_out))
    return calculate_rollover_amount(
        requested,
        _resolve_price(pricing_strategy, terms, token_in),
        _resolve_price(pricing_strategy, terms, token_out),
        fee_strategy.compute_rollover_fee_perc(),
        coverage,
    )


def compute_rollover_amount(
    view: AssetView,
    perp_symbol: str,
    registry: DepositBondRegistry,
    pricing_strategy: PricingStrategy,
    fee_strategy: FeeStrategy,
    token_in: str,
    token_out: str,
    requested: Decimal,
    max_token_out: Optional[Decimal] = None,
) -> RolloverAmounts:
    """
    Amounts a rollover would exchange. Never mutates.

    Raises:
        UnacceptableRollover: See validate_rollover()
    """
    terms, reserve = load_reserve(view, perp_symbol)
    validate_rollover(view, terms, reserve, registry, token_in, token_out)
    return _rollover_amounts(
        terms, reserve, pricing_strategy, fee_strategy,
        token_in, token_out, requested, max_token_out,
    )


def compute_rollover(
    view: AssetView,
    perp_symbol: str,
    account: str,
    registry: DepositBondRegistry,
    pricing_strategy: PricingStrategy,
    fee_strategy: FeeStrategy,
    token_in: str,
    token_out: str,
    requested: Decimal,
    max_token_out: Optional[Decimal] = None,
) -> PendingTransaction:
    """
    Swap token_in from account for token_out from the reserve.

    The incoming tranche is pulled with the allowance account granted the
    reserve wallet. Rolling the collateral out reduces the notional balance
    in proportion to the live collateral released.

    Returns:
        Empty PendingTransaction when no tranche would be pulled

    Raises:
        UnacceptableRollover: See validate_rollover()
    """
    terms, reserve = load_reserve(view, perp_symbol)
    validate_rollover(view, terms, reserve, registry, token_in, token_out)
    amounts = _rollover_amounts(
        terms, reserve, pricing_strategy, fee_strategy,
        token_in, token_out, requested, max_token_out,
    )
    if amounts.is_zero():
        return empty_pending_transaction(view)

    reserve_wallet = terms.reserve_wallet
    moves: List[Move] = [Move(
        amounts.tranche_in_amount, token_in, account, reserve_wallet, "rollover_in",
        spender=reserve_wallet,
    )]
    events: List[Event] = []

    if amounts.token_out_amount > ZERO:
        moves.append(Move(amounts.token_out_amount, token_out, reserve_wallet, account, "rollover_out"))
        live_collateral = reserve.balance_of(terms.collateral)
        if token_out == terms.collateral and live_collateral > ZERO:
            reduction = mul_div(reserve.mature_tranche_balance, amounts.token_out_amount, live_collateral)
            events.append(UpdatedMatureTrancheBalance(reserve.reduce_mature_tranche_balance(reduction)))

    reserve.credit(token_in, amounts.tranche_in_amount)
    reserve.sync(token_in)
    reserve.debit(token_out, amounts.token_out_amount)
    reserve.sync(token_out)
    events.extend(reserve.sync_events())

    state = view.get_asset_state(perp_symbol)
    return build_transaction(
        view,
        moves,
        [AssetStateChange(asset=perp_symbol, old_state=state, new_state=to_state_dict(state, reserve))],
        events,
        origin=TransactionOrigin(OriginType.USER_ACTION, account, perp_symbol, "ROLLOVER"),
    )
