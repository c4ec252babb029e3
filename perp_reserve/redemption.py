"""
redemption.py - Pro-Rata Redemption Against the Reserve

Burning b claim tokens out of a supply of T releases, for every reserve asset,

    amount = floor(live_balance * b / T)

and reduces the notional collateral balance by floor(notional * b / T). The
ratio b / T is applied exactly and each product is floored once.

The collateral's two units of account are reduced independently: after a
rebase the live amount released differs from the notional reduction.

Functions:
1. calculate_redemption_amounts() - pure, no view
2. compute_redemption_amounts()   - side-effect-free query against a view
3. validate_burn()                - UnacceptableBurnAmt checks
4. compute_redemption()           - PendingTransaction for a redeem
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from .core import (
    AssetView, Move, PendingTransaction, AssetStateChange, FeeStrategy,
    TransactionOrigin, OriginType, UpdatedMatureTrancheBalance, Event,
    UnacceptableBurnAmt, ExpectedSupplyReduction,
    SYSTEM_WALLET, ZERO, build_transaction,
)
from .fees import compute_fee_settlement
from .fixed_point import mul_div, to_fixed
from .reserve import load_reserve, to_state_dict


@dataclass(frozen=True, slots=True)
class RedemptionAmounts:
    """
    Per-asset reserve drawdown for one burn.

    Attributes:
        assets: Reserve assets in reserve order
        amounts: Live amounts released, parallel to assets
        mature_reduction: Decrease of the notional collateral balance
    """
    assets: Tuple[str, ...]
    amounts: Tuple[Decimal, ...]
    mature_reduction: Decimal = ZERO


def calculate_redemption_amounts(
    balances: Sequence[Tuple[str, Decimal]],
    mature_tranche_balance: Decimal,
    burn_amount: Decimal,
    supply: Decimal,
) -> RedemptionAmounts:
    """
    Pure pro-rata drawdown.

    Args:
        balances: (asset, live balance) pairs in reserve order
        mature_tranche_balance: Notional collateral balance
        burn_amount: Claim tokens burnt
        supply: Claim supply before the burn

    Returns:
        RedemptionAmounts; all zero when supply is zero
    """
    assets = tuple(asset for asset, _ in balances)
    if supply <= ZERO:
        return RedemptionAmounts(assets, tuple(ZERO for _ in assets), ZERO)
    amounts = tuple(mul_div(balance, burn_amount, supply) for _, balance in balances)
    return RedemptionAmounts(
        assets=assets,
        amounts=amounts,
        mature_reduction=mul_div(mature_tranche_balance, burn_amount, supply),
    )


def compute_redemption_amounts(
    view: AssetView,
    perp_symbol: str,
    burn_amount: Decimal,
) -> Tuple[Tuple[str, ...], Tuple[Decimal, ...]]:
    """
    Reserve assets and amounts released by burning burn_amount. Never mutates.

    Returns zeros (one per reserve asset) when the claim supply is zero.
    """
    _, reserve = load_reserve(view, perp_symbol)
    result = calculate_redemption_amounts(
        [(a, reserve.balance_of(a)) for a in reserve.assets],
        reserve.mature_tranche_balance,
        to_fixed(burn_amount),
        view.total_supply(perp_symbol),
    )
    return result.assets, result.amounts


def validate_burn(view: AssetView, perp_symbol: str, account: str, burn_amount: Decimal) -> None:
    """
    Raises:
        UnacceptableBurnAmt(burn_amount, caller_balance): zero or negative burn,
            burn above the caller's balance, or zero claim supply
    """
    balance = view.get_balance(account, perp_symbol)
    if burn_amount <= ZERO or burn_amount > balance or view.total_supply(perp_symbol) == ZERO:
        raise UnacceptableBurnAmt(burn_amount, balance)


def compute_redemption(
    view: AssetView,
    perp_symbol: str,
    account: str,
    burn_amount: Decimal,
    fee_strategy: FeeStrategy,
    protocol_wallet: Optional[str] = None,
) -> PendingTransaction:
    """
    Burn burn_amount claim tokens from account and release its share of the reserve.

    Moves, in order:
        1. burn: account -> SYSTEM_WALLET
        2. one release per reserve asset with a non-zero amount
        3. fee settlement moves

    Raises:
        UnacceptableBurnAmt: See validate_burn()
        ExpectedSupplyReduction: A rebate would mint more than is burnt
    """
    burn_amount = to_fixed(burn_amount)
    validate_burn(view, perp_symbol, account, burn_amount)

    terms, reserve = load_reserve(view, perp_symbol)
    result = calculate_redemption_amounts(
        [(a, reserve.balance_of(a)) for a in reserve.assets],
        reserve.mature_tranche_balance,
        burn_amount,
        view.total_supply(perp_symbol),
    )

    moves: List[Move] = [Move(burn_amount, perp_symbol, account, SYSTEM_WALLET, "redeem_burn")]
    events: List[Event] = []

    collateral = terms.collateral
    if reserve.balance_of(collateral) > ZERO or reserve.mature_tranche_balance > ZERO:
        new_notional = reserve.reduce_mature_tranche_balance(result.mature_reduction)
        events.append(UpdatedMatureTrancheBalance(new_notional))

    for asset, amount in zip(result.assets, result.amounts):
        if amount > ZERO:
            moves.append(Move(amount, asset, terms.reserve_wallet, account, f"redeem_{asset}"))
        reserve.debit(asset, amount)
        reserve.sync(asset)

    quote = fee_strategy.compute_burn_fee(burn_amount)
    settlement = compute_fee_settlement(
        view, terms, account, quote, protocol_wallet, contract_id="redeem_fee",
    )
    if settlement.minted > burn_amount:
        raise ExpectedSupplyReduction(
            f"Rebate mints {settlement.minted} {perp_symbol} against a burn of {burn_amount}"
        )
    moves.extend(settlement.moves)
    events.extend(reserve.sync_events())

    state = view.get_asset_state(perp_symbol)
    return build_transaction(
        view,
        moves,
        [AssetStateChange(asset=perp_symbol, old_state=state, new_state=to_state_dict(state, reserve))],
        events,
        origin=TransactionOrigin(OriginType.USER_ACTION, account, perp_symbol, "REDEEM"),
    )
