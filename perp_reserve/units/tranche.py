"""
tranche.py - Tranche Assets and the Deposit Bond Registry

A Bond splits its collateral into tranches, ordered most senior first.
Each tranche is a separate Asset whose state records:
    bond, maturity, seniority, ratio

The BondRegistry is the authority on which tranches a bond actually has and
which bond currently takes deposits. Rollover validation asks it, instead of
trusting the bond a tranche declares for itself.
"""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from ..core import (
    Asset, Bond, ASSET_TYPE_TRANCHE, _freeze_state,
)


def create_tranche_unit(
    symbol: str,
    name: str,
    bond_symbol: str,
    maturity: datetime,
    seniority: int = 0,
    ratio: Optional[Decimal] = None,
) -> Asset:
    """
    Create a tranche asset.

    Args:
        symbol: Tranche token symbol (e.g., "B1-A")
        name: Human-readable name
        bond_symbol: Bond the tranche declares as its parent
        maturity: Parent bond maturity
        seniority: 0 for the most senior class
        ratio: Share of the bond's collateral backing this class
    """
    if seniority < 0:
        raise ValueError(f"seniority must be non-negative, got {seniority}")
    state = {
        'bond': bond_symbol,
        'maturity': maturity,
        'seniority': seniority,
    }
    if ratio is not None:
        state['ratio'] = ratio if isinstance(ratio, Decimal) else Decimal(str(ratio))
    return Asset(
        symbol=symbol,
        name=name,
        asset_type=ASSET_TYPE_TRANCHE,
        _frozen_state=_freeze_state(state),
    )


class BondRegistry:
    """
    In-memory bond issuer implementing DepositBondRegistry.

    Example:
        registry = BondRegistry()
        bond, tranches = registry.issue_bond("B1", datetime(2025, 6, 1), ("B1-A", "B1-Z"))
        for tranche in tranches:
            ledger.register_asset(tranche)
        registry.set_deposit_bond("B1")
    """

    def __init__(self):
        self._bonds: Dict[str, Bond] = {}
        self._deposit_bond: Optional[str] = None

    def issue_bond(
        self,
        symbol: str,
        maturity: datetime,
        tranche_symbols: Sequence[str],
        ratios: Optional[Sequence[Decimal]] = None,
    ) -> Tuple[Bond, List[Asset]]:
        """
        Record a new bond and build its tranche assets.

        The first bond issued becomes the deposit bond.

        Returns:
            (bond, tranche assets most senior first) - assets still need registering

        Raises:
            ValueError: duplicate bond, or ratios that do not match the tranches
        """
        if symbol in self._bonds:
            raise ValueError(f"Bond {symbol} already issued")
        if ratios is not None and len(ratios) != len(tranche_symbols):
            raise ValueError(
                f"Bond {symbol}: {len(ratios)} ratios for {len(tranche_symbols)} tranches"
            )
        bond = Bond(symbol=symbol, maturity=maturity, tranches=tuple(tranche_symbols))
        tranches = [
            create_tranche_unit(
                symbol=tranche_symbol,
                name=f"{symbol} tranche {index}",
                bond_symbol=symbol,
                maturity=maturity,
                seniority=index,
                ratio=ratios[index] if ratios is not None else None,
            )
            for index, tranche_symbol in enumerate(tranche_symbols)
        ]
        self._bonds[symbol] = bond
        if self._deposit_bond is None:
            self._deposit_bond = symbol
        return bond, tranches

    def set_deposit_bond(self, symbol: str) -> None:
        if symbol not in self._bonds:
            raise ValueError(f"Unknown bond: {symbol}")
        self._deposit_bond = symbol

    def deposit_bond(self) -> Bond:
        if self._deposit_bond is None:
            raise ValueError("No deposit bond has been issued")
        return self._bonds[self._deposit_bond]

    def get_bond(self, symbol: str) -> Optional[Bond]:
        return self._bonds.get(symbol)

    def __repr__(self):
        return f"BondRegistry({len(self._bonds)} bonds, deposit={self._deposit_bond})"
