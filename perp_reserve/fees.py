"""
fees.py - Fee Settlement

Turns a signed FeeQuote into moves. Settlement branches once on where the fee
is paid:

    NativeFee(held)   - fee asset is the claim token itself; held is the
                        reserve wallet's own claim-token balance
    ExternalFee(token) - fee asset is another token the reserve does not issue

Transfer patterns:
    native,   amount > 0 : account -> reserve wallet (fee parked in the reserve)
    native,   amount < 0 : reserve wallet -> account up to held, shortfall minted
    external, amount > 0 : account -> reserve wallet, pulled with allowance
    external, amount < 0 : reserve wallet -> account, no mint fallback
    protocol fee         : account -> protocol wallet, same asset

Balance and allowance failures are left to AssetLedger.execute(), which
raises InsufficientBalance / InsufficientAllowance unchanged.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from .core import (
    AssetView, FeeQuote, Move, SYSTEM_WALLET, ZERO,
)
from .reserve import PerpTerms


@dataclass(frozen=True, slots=True)
class NativeFee:
    """Fee settled in the claim token; held is the reserve's parked balance."""
    held: Decimal


@dataclass(frozen=True, slots=True)
class ExternalFee:
    """Fee settled in a token the reserve does not issue."""
    token: str


FeeSettlementMode = Union[NativeFee, ExternalFee]


@dataclass(frozen=True, slots=True)
class FeeSettlement:
    """
    Moves settling one fee quote.

    Attributes:
        moves: Transfers (and mints) in execution order
        minted: Claim tokens minted to cover a rebate shortfall
    """
    moves: Tuple[Move, ...]
    minted: Decimal = ZERO


def resolve_settlement_mode(view: AssetView, terms: PerpTerms, fee_asset: str) -> FeeSettlementMode:
    """Pick the settlement branch for a fee asset."""
    if fee_asset == terms.symbol:
        return NativeFee(held=view.get_balance(terms.reserve_wallet, terms.symbol))
    return ExternalFee(token=fee_asset)


def calculate_native_rebate(rebate: Decimal, held: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split a rebate between parked fees and newly minted claim tokens.

    Args:
        rebate: Rebate owed to the account (positive)
        held: Claim tokens parked in the reserve wallet

    Returns:
        (paid_from_reserve, minted)
    """
    paid = min(held, rebate)
    return paid, rebate - paid


def compute_fee_settlement(
    view: AssetView,
    terms: PerpTerms,
    account: str,
    quote: FeeQuote,
    protocol_wallet: Optional[str] = None,
    contract_id: str = "fee",
) -> FeeSettlement:
    """
    Build the moves that settle quote between account and the reserve.

    Args:
        view: Read-only ledger access
        terms: Claim token configuration (symbol and reserve wallet)
        account: Account paying or receiving the fee
        quote: Signed fee plus optional protocol fee
        protocol_wallet: Recipient of the protocol fee
        contract_id: Move identifier prefix

    Raises:
        ValueError: If a protocol fee is quoted without a protocol wallet
    """
    mode = resolve_settlement_mode(view, terms, quote.asset)
    reserve_wallet = terms.reserve_wallet
    moves: List[Move] = []
    minted = ZERO

    if isinstance(mode, NativeFee):
        if quote.amount > ZERO:
            moves.append(Move(quote.amount, quote.asset, account, reserve_wallet, contract_id))
        elif quote.amount < ZERO:
            paid, minted = calculate_native_rebate(-quote.amount, mode.held)
            if paid > ZERO:
                moves.append(Move(paid, quote.asset, reserve_wallet, account, f"{contract_id}_rebate"))
            if minted > ZERO:
                moves.append(Move(minted, quote.asset, SYSTEM_WALLET, account, f"{contract_id}_rebate_mint"))
    else:
        if quote.amount > ZERO:
            moves.append(Move(
                quote.amount, mode.token, account, reserve_wallet, contract_id,
                spender=reserve_wallet,
            ))
        elif quote.amount < ZERO:
            moves.append(Move(-quote.amount, mode.token, reserve_wallet, account, f"{contract_id}_rebate"))

    if quote.protocol_amount > ZERO:
        if protocol_wallet is None:
            raise ValueError("Protocol fee quoted but no protocol wallet configured")
        moves.append(Move(
            quote.protocol_amount, quote.asset, account, protocol_wallet, f"{contract_id}_protocol",
            spender=None if isinstance(mode, NativeFee) else reserve_wallet,
        ))

    return FeeSettlement(moves=tuple(moves), minted=minted)
