"""
collateral.py - Rebasing Collateral Asset

The collateral is an elastic-supply token: a rebase scales every holder's
balance by the same factor. The reserve keeps tracking its par claim on the
collateral separately (mature_tranche_balance), so after a rebase the live
balance and the notional balance diverge.

Functions:
1. create_collateral_unit() - Factory for the collateral asset
2. compute_rebase_adjustments() - Pure per-holder adjustments
3. compute_rebase() - PendingTransaction that applies a rebase through SYSTEM_WALLET
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Mapping

from ..core import (
    AssetView, Asset, AssetStateChange, Move, PendingTransaction,
    TransactionOrigin, OriginType,
    ASSET_TYPE_COLLATERAL, SYSTEM_WALLET, ZERO,
    build_transaction, _freeze_state,
)
from ..fixed_point import mul


def create_collateral_unit(symbol: str, name: str) -> Asset:
    """Create the rebasing collateral asset."""
    return Asset(
        symbol=symbol,
        name=name,
        asset_type=ASSET_TYPE_COLLATERAL,
        _frozen_state=_freeze_state({'rebasing': True, 'rebase_count': 0}),
    )


@dataclass(frozen=True, slots=True)
class RebaseAdjustment:
    """Balance change of one holder in a rebase."""
    wallet: str
    old_balance: Decimal
    new_balance: Decimal

    @property
    def adjustment(self) -> Decimal:
        return self.new_balance - self.old_balance


def compute_rebase_adjustments(
    factor: Decimal,
    positions: Mapping[str, Decimal],
) -> List[RebaseAdjustment]:
    """
    Compute the new balance of every holder for a rebase. Pure function.

    New balances are floored to 18 digits; SYSTEM_WALLET is the counterparty
    and is never itself adjusted.

    Example (+50%):
        reserve holds 500 -> 750
    """
    adjustments = []
    for wallet, balance in sorted(positions.items()):
        if wallet == SYSTEM_WALLET or balance <= ZERO:
            continue
        new_balance = mul(balance, factor)
        if new_balance != balance:
            adjustments.append(RebaseAdjustment(wallet, balance, new_balance))
    return adjustments


def compute_rebase(view: AssetView, symbol: str, factor: Decimal) -> PendingTransaction:
    """
    Rebase the collateral supply by factor.

    Args:
        view: Read-only ledger access
        symbol: Collateral asset symbol
        factor: Supply multiplier (1.5 = +50%, 0.8 = -20%)

    Returns:
        PendingTransaction moving the adjustments to/from SYSTEM_WALLET

    Raises:
        ValueError: If factor is not positive or the asset does not rebase
    """
    if not isinstance(factor, Decimal):
        factor = Decimal(str(factor))
    if factor <= ZERO:
        raise ValueError(f"Rebase factor must be positive, got {factor}")

    state = view.get_asset_state(symbol)
    if not state.get('rebasing'):
        raise ValueError(f"Asset {symbol} does not rebase")

    count = state.get('rebase_count', 0) + 1
    moves = []
    for adj in compute_rebase_adjustments(factor, view.get_positions(symbol)):
        contract_id = f"rebase_{symbol}_{count}_{adj.wallet}"
        if adj.adjustment > 0:
            moves.append(Move(adj.adjustment, symbol, SYSTEM_WALLET, adj.wallet, contract_id))
        else:
            moves.append(Move(-adj.adjustment, symbol, adj.wallet, SYSTEM_WALLET, contract_id))

    new_state = {
        **state,
        'rebase_count': count,
        'last_rebase_factor': factor,
        'last_rebase_time': view.current_time,
    }
    return build_transaction(
        view,
        moves,
        [AssetStateChange(asset=symbol, old_state=state, new_state=new_state)],
        origin=TransactionOrigin(OriginType.SYSTEM, "rebase", symbol, "REBASE"),
    )
