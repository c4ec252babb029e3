"""
Atomicity Conformance Tests

INVARIANT: Redemptions and rollovers are all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ every transfer, reserve update and event of O is applied
        O raises   ⟹ balances, allowances, reserve state and logs are unchanged

Partial application is impossible by construction: the ledger validates the
whole PendingTransaction before mutating anything.
"""

import copy
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal

from perp_reserve import (
    ReserveGuard, UnacceptableBurnAmt, UnacceptableRollover, ExpectedSupplyReduction,
    InsufficientAllowance, InsufficientBalance, Paused,
)

from tests.reserve_setup import (
    PERP, FEE, RESERVE, KEEPER, OLD_SENIOR, OLD_JUNIOR, DEPOSIT_SENIOR, DEPOSIT_JUNIOR, ROLLER,
    FixedFeeStrategy, build_standard_reserve,
)


def snapshot(ledger):
    """Everything an operation could mutate."""
    return (
        {wallet: dict(balances) for wallet, balances in ledger.balances.items()},
        {owner: copy.deepcopy(dict(by_spender)) for owner, by_spender in ledger.allowances.items()},
        ledger.get_asset_state(PERP),
        len(ledger.transaction_log),
        len(ledger.event_log),
    )


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(st.decimals(min_value=Decimal("600.000000000000000001"), max_value=Decimal("100000"), places=18))
    @settings(max_examples=30, deadline=None)
    def test_overdrawn_burn_changes_nothing(self, burn):
        """
        PROPERTY: Burning more than the caller holds raises and leaves no trace.
        """
        ledger, perp = build_standard_reserve()
        before = snapshot(ledger)
        with pytest.raises(UnacceptableBurnAmt):
            perp.redeem("alice", burn)
        assert snapshot(ledger) == before

    @given(st.decimals(min_value=Decimal("0.01"), max_value=Decimal("600"), places=2))
    @settings(max_examples=30, deadline=None)
    def test_unfunded_fee_rolls_back_burn_and_releases(self, burn):
        """
        PROPERTY: When the trailing fee transfer fails, the burn and every
        release before it are rolled back.
        """
        ledger, perp = build_standard_reserve(fee_strategy=FixedFeeStrategy(fee_token=FEE, burn_fee=Decimal("1")))
        before = snapshot(ledger)
        with pytest.raises(InsufficientAllowance):
            perp.redeem("alice", burn)
        assert snapshot(ledger) == before


class TestAtomicityExamples:
    """Explicit failure cases."""

    def test_fee_approved_but_unfunded(self):
        ledger, perp = build_standard_reserve(fee_strategy=FixedFeeStrategy(fee_token=FEE, burn_fee=Decimal("1")))
        ledger.approve("alice", RESERVE, FEE, Decimal("1"))
        before = snapshot(ledger)
        with pytest.raises(InsufficientBalance):
            perp.redeem("alice", Decimal("100"))
        assert snapshot(ledger) == before

    def test_native_fee_above_remaining_balance(self):
        ledger, perp = build_standard_reserve(fee_strategy=FixedFeeStrategy(burn_fee=Decimal("1")))
        before = snapshot(ledger)
        with pytest.raises(InsufficientBalance):
            perp.redeem("alice", Decimal("600"))
        assert snapshot(ledger) == before

    def test_expected_supply_reduction(self):
        ledger, perp = build_standard_reserve(fee_strategy=FixedFeeStrategy(burn_fee=Decimal("-1")))
        before = snapshot(ledger)
        with pytest.raises(ExpectedSupplyReduction):
            perp.redeem("alice", Decimal("0.01"))
        assert snapshot(ledger) == before

    def test_rollover_without_allowance(self):
        ledger, perp = build_standard_reserve()
        ledger.approve(ROLLER, RESERVE, DEPOSIT_SENIOR, Decimal("0"))
        before = snapshot(ledger)
        with pytest.raises(InsufficientAllowance):
            perp.rollover(ROLLER, DEPOSIT_SENIOR, OLD_SENIOR, Decimal("10"))
        assert snapshot(ledger) == before

    def test_rollover_beyond_holding(self):
        ledger, perp = build_standard_reserve()
        ledger.set_balance(ROLLER, DEPOSIT_SENIOR, Decimal("5"))
        before = snapshot(ledger)
        with pytest.raises(InsufficientBalance):
            perp.rollover(ROLLER, DEPOSIT_SENIOR, OLD_SENIOR, Decimal("10"))
        assert snapshot(ledger) == before

    def test_unacceptable_pair(self):
        ledger, perp = build_standard_reserve()
        before = snapshot(ledger)
        with pytest.raises(UnacceptableRollover):
            perp.rollover(ROLLER, DEPOSIT_JUNIOR, OLD_JUNIOR, Decimal("10"))
        assert snapshot(ledger) == before

    def test_paused(self):
        guard = ReserveGuard(KEEPER)
        ledger, perp = build_standard_reserve(guard=guard)
        guard.pause(KEEPER)
        before = snapshot(ledger)
        with pytest.raises(Paused):
            perp.redeem("alice", Decimal("1"))
        with pytest.raises(Paused):
            perp.rollover(ROLLER, DEPOSIT_SENIOR, OLD_SENIOR, Decimal("1"))
        assert snapshot(ledger) == before
