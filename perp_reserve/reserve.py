"""
reserve.py - Reserve Composition and the Claim Token

The perpetual claim token ("perp") carries the reserve bookkeeping in its
asset state:

    collateral              - symbol of the rebasing collateral (entry 0)
    reserve_wallet          - wallet holding the reserve and parked perp fees
    reserve_assets          - ordered list of assets in the reserve
    mature_tranche_balance  - notional (par) claim on the collateral
    accepted_tranche_index  - tranche class of the deposit bond accepted by rollover

Live balances are never stored here: they are the reserve wallet's balances in
the AssetLedger, so a collateral rebase shows up in the live balance while the
notional balance stays put.

ARCHITECTURE (same split as every other unit):
1. PerpTerms: frozen configuration read from state
2. ReserveLedger: mutable working copy used while building one transaction
3. load_reserve() / to_state_dict(): the only readers/writers of perp state
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from .core import (
    AssetView, Asset, AssetState, ReserveSynced, InsufficientReserve,
    ASSET_TYPE_PERP, ZERO, _freeze_state,
)


# ============================================================================
# CLAIM TOKEN FACTORY
# ============================================================================

def create_perp_unit(
    symbol: str,
    name: str,
    collateral: str,
    reserve_wallet: str,
    accepted_tranche_index: int = 0,
) -> Asset:
    """
    Create the perpetual claim token with an empty reserve.

    Args:
        symbol: Claim token symbol (e.g., "SPOT")
        name: Human-readable name
        collateral: Symbol of the rebasing collateral asset
        reserve_wallet: Wallet that custodies reserve assets and parked fees
        accepted_tranche_index: Seniority of the deposit-bond tranche rollovers accept
    """
    if accepted_tranche_index < 0:
        raise ValueError(f"accepted_tranche_index must be non-negative, got {accepted_tranche_index}")
    return Asset(
        symbol=symbol,
        name=name,
        asset_type=ASSET_TYPE_PERP,
        _frozen_state=_freeze_state({
            'collateral': collateral,
            'reserve_wallet': reserve_wallet,
            'reserve_assets': [collateral],
            'mature_tranche_balance': ZERO,
            'accepted_tranche_index': accepted_tranche_index,
        }),
    )


@dataclass(frozen=True, slots=True)
class PerpTerms:
    """Fixed configuration of a claim token."""
    symbol: str
    collateral: str
    reserve_wallet: str
    accepted_tranche_index: int


# ============================================================================
# RESERVE LEDGER
# ============================================================================

class ReserveLedger:
    """
    Ordered asset -> live balance mapping plus the notional collateral counter.

    Invariants:
        - the collateral is always entry 0 and is never pruned
        - every other entry has a non-zero balance after a debit
        - order is insertion order; balance changes never reorder

    The collateral's live balance and mature_tranche_balance are two units of
    account for one asset. They move together only through redemption and
    rollover; a rebase moves the live balance alone.
    """

    def __init__(
        self,
        collateral: str,
        balances: Iterable[Tuple[str, Decimal]] = (),
        mature_tranche_balance: Decimal = ZERO,
    ):
        self.collateral = collateral
        self._balances: Dict[str, Decimal] = {collateral: ZERO}
        for asset, balance in balances:
            if asset in self._balances and asset != collateral:
                raise ValueError(f"Asset {asset} listed twice in reserve")
            self._balances[asset] = balance
        self.mature_tranche_balance = mature_tranche_balance
        self._touched: List[str] = []

    @property
    def assets(self) -> Tuple[str, ...]:
        return tuple(self._balances)

    def __contains__(self, asset: str) -> bool:
        return asset in self._balances

    def __len__(self) -> int:
        return len(self._balances)

    def balance_of(self, asset: str) -> Decimal:
        """Live balance of asset in the reserve, 0 if absent."""
        return self._balances.get(asset, ZERO)

    def credit(self, asset: str, amount: Decimal) -> Decimal:
        """Increase an asset's balance, appending it on first credit. Returns the new balance."""
        if amount < ZERO:
            raise ValueError(f"Credit amount must be non-negative, got {amount}")
        if amount == ZERO and asset not in self._balances:
            return ZERO
        self._balances[asset] = self._balances.get(asset, ZERO) + amount
        return self._balances[asset]

    def debit(self, asset: str, amount: Decimal) -> Decimal:
        """
        Decrease an asset's balance, pruning it at exactly zero. Returns the new balance.

        Raises:
            InsufficientReserve: If amount exceeds the live balance
        """
        if amount < ZERO:
            raise ValueError(f"Debit amount must be non-negative, got {amount}")
        balance = self.balance_of(asset)
        if amount > balance:
            raise InsufficientReserve(
                f"Reserve holds {balance} {asset}, cannot release {amount}"
            )
        new_balance = balance - amount
        if new_balance == ZERO and asset != self.collateral:
            self._balances.pop(asset, None)
        elif asset in self._balances:
            self._balances[asset] = new_balance
        return new_balance

    def reduce_mature_tranche_balance(self, amount: Decimal) -> Decimal:
        """Decrease the notional collateral balance. Returns the new value."""
        if amount < ZERO:
            raise ValueError(f"Reduction must be non-negative, got {amount}")
        if amount > self.mature_tranche_balance:
            raise InsufficientReserve(
                f"Notional balance {self.mature_tranche_balance} below reduction {amount}"
            )
        self.mature_tranche_balance -= amount
        return self.mature_tranche_balance

    def sync(self, asset: str) -> None:
        """Mark asset as touched by the current operation."""
        if asset not in self._touched:
            self._touched.append(asset)

    def sync_events(self) -> List[ReserveSynced]:
        """One ReserveSynced per touched asset, in first-touch order."""
        return [ReserveSynced(asset, self.balance_of(asset)) for asset in self._touched]

    def __repr__(self):
        entries = ", ".join(f"{a}={b}" for a, b in self._balances.items())
        return f"ReserveLedger({entries}; notional={self.mature_tranche_balance})"


# ============================================================================
# ADAPTERS
# ============================================================================

def load_reserve(view: AssetView, perp_symbol: str) -> Tuple[PerpTerms, ReserveLedger]:
    """
    Load a claim token's terms and a working copy of its reserve.

    Live balances are read from the reserve wallet, in the stored order.
    """
    raw = view.get_asset_state(perp_symbol)
    collateral = raw['collateral']
    reserve_wallet = raw['reserve_wallet']
    terms = PerpTerms(
        symbol=perp_symbol,
        collateral=collateral,
        reserve_wallet=reserve_wallet,
        accepted_tranche_index=raw.get('accepted_tranche_index', 0),
    )
    assets = [collateral] + [a for a in raw.get('reserve_assets', []) if a != collateral]
    mature = raw.get('mature_tranche_balance', ZERO)
    reserve = ReserveLedger(
        collateral=collateral,
        balances=[(a, view.get_balance(reserve_wallet, a)) for a in assets],
        mature_tranche_balance=mature if isinstance(mature, Decimal) else Decimal(str(mature)),
    )
    return terms, reserve


def to_state_dict(state: AssetState, reserve: ReserveLedger) -> AssetState:
    """Inverse of load_reserve(): the claim token's state with the reserve written back."""
    return {
        **state,
        'reserve_assets': list(reserve.assets),
        'mature_tranche_balance': reserve.mature_tranche_balance,
    }

