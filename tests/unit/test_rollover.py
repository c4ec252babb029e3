"""
Tests for reserve rollover.

Tests cover:
1. Pure calculate_rollover_amount: prices, signed fees, coverage cap
2. Token pair validation against the deposit bond registry
3. Queries with an explicit output cap
4. PendingTransaction shape, including collateral outflows
"""
import pytest
from datetime import datetime
from decimal import Decimal

from perp_reserve import (
    Move, ReserveSynced, UpdatedMatureTrancheBalance, UnacceptableRollover,
    RolloverAmounts, NO_ROLLOVER, UnitPricingStrategy,
    StaticPricingStrategy, BasicFeeStrategy,
    calculate_rollover_amount, compute_rollover_amount, compute_rollover,
    is_acceptable_for_reserve, load_reserve,
    create_perp_unit, create_collateral_unit, create_tranche_unit, fee_token,
)

from tests.fake_view import FakeView
from tests.reserve_setup import make_registry


def rollover_view(reserve_balances, notional=Decimal("0")):
    """FakeView with B1/B2 tranches, a forged tranche and a fee token registered."""
    perp = create_perp_unit("SPOT", "Spot", "AMPL", "reserve")
    order = ["AMPL"] + [a for a in reserve_balances if a != "AMPL"]
    assets = {
        'SPOT': perp,
        'AMPL': create_collateral_unit("AMPL", "Ampleforth"),
        'FEE': fee_token("FEE", "Fee Token"),
        # declares the deposit bond but is not one of its tranches
        'FAKE-A': create_tranche_unit("FAKE-A", "Forged", "B2", datetime(2025, 6, 1), 0),
    }
    for bond, maturity in (("B1", datetime(2025, 3, 1)), ("B2", datetime(2025, 6, 1))):
        for index, suffix in enumerate(("A", "Z")):
            symbol = f"{bond}-{suffix}"
            assets[symbol] = create_tranche_unit(symbol, symbol, bond, maturity, index)
    return FakeView(
        balances={'reserve': {a: Decimal(b) for a, b in reserve_balances.items()}},
        assets=assets,
        states={'SPOT': {**perp.state, 'reserve_assets': order, 'mature_tranche_balance': notional}},
    )


class TestCalculateRolloverAmount:
    """Pure rollover arithmetic."""

    def test_par_no_fee(self):
        result = calculate_rollover_amount(Decimal("100"), Decimal("1"), Decimal("1"), Decimal("0"), Decimal("500"))
        assert result == RolloverAmounts(Decimal("100"), Decimal("100"))

    def test_cheaper_tranche_in(self):
        result = calculate_rollover_amount(Decimal("500"), Decimal("0.5"), Decimal("1"), Decimal("0"), Decimal("500"))
        assert result == RolloverAmounts(Decimal("250"), Decimal("500"))

    def test_capped_output_recomputes_input(self):
        result = calculate_rollover_amount(Decimal("500"), Decimal("1"), Decimal("0.5"), Decimal("0"), Decimal("500"))
        assert result == RolloverAmounts(Decimal("500"), Decimal("250"))

    def test_positive_fee_reduces_output(self):
        result = calculate_rollover_amount(Decimal("100"), Decimal("1"), Decimal("1"), Decimal("0.01"), Decimal("500"))
        assert result == RolloverAmounts(Decimal("99"), Decimal("100"))

    def test_negative_fee_reduces_input(self):
        result = calculate_rollover_amount(Decimal("500"), Decimal("1"), Decimal("1"), Decimal("-0.01"), Decimal("1000"))
        assert result == RolloverAmounts(Decimal("500"), Decimal("495.049504950495049505"))

    def test_negative_fee_capped(self):
        result = calculate_rollover_amount(Decimal("500"), Decimal("1"), Decimal("1"), Decimal("-0.01"), Decimal("400"))
        assert result == RolloverAmounts(Decimal("400"), Decimal("396.039603960396039604"))

    def test_positive_fee_capped(self):
        result = calculate_rollover_amount(Decimal("600"), Decimal("1"), Decimal("1"), Decimal("0.01"), Decimal("400"))
        assert result == RolloverAmounts(Decimal("400"), Decimal("404.040404040404040405"))

    def test_full_fee_keeps_everything(self):
        result = calculate_rollover_amount(Decimal("100"), Decimal("1"), Decimal("1"), Decimal("1"), Decimal("500"))
        assert result == RolloverAmounts(Decimal("0"), Decimal("100"))

    def test_zero_coverage(self):
        result = calculate_rollover_amount(Decimal("100"), Decimal("1"), Decimal("1"), Decimal("0"), Decimal("0"))
        assert result == NO_ROLLOVER

    @pytest.mark.parametrize("price_in,price_out", [
        (Decimal("0"), Decimal("1")),
        (Decimal("1"), Decimal("0")),
    ])
    def test_zero_price_is_no_op(self, price_in, price_out):
        result = calculate_rollover_amount(Decimal("100"), price_in, price_out, Decimal("0"), Decimal("500"))
        assert result.is_zero()
        assert result == NO_ROLLOVER

    def test_zero_request(self):
        assert calculate_rollover_amount(Decimal("0"), Decimal("1"), Decimal("1"), Decimal("0"), Decimal("500")) == NO_ROLLOVER

    def test_fee_above_one_rejected(self):
        with pytest.raises(ValueError):
            calculate_rollover_amount(Decimal("1"), Decimal("1"), Decimal("1"), Decimal("1.01"), Decimal("1"))

    def test_negative_request_rejected(self):
        with pytest.raises(ValueError):
            calculate_rollover_amount(Decimal("-1"), Decimal("1"), Decimal("1"), Decimal("0"), Decimal("1"))


class TestValidation:
    """Only the accepted class of the deposit bond may come in."""

    def _query(self, token_in, token_out, reserve=None):
        view = rollover_view(reserve or {"B1-A": "500", "B2-Z": "10", "B2-A": "10"})
        return compute_rollover_amount(
            view, "SPOT", make_registry(), UnitPricingStrategy(), BasicFeeStrategy("SPOT"),
            token_in, token_out, Decimal("100"),
        )

    def test_valid_pair(self):
        assert self._query("B2-A", "B1-A") == RolloverAmounts(Decimal("100"), Decimal("100"))

    def test_old_bond_tranche_in(self):
        with pytest.raises(UnacceptableRollover, match="deposit bond"):
            self._query("B1-A", "B1-Z")

    def test_forged_tranche_in(self):
        with pytest.raises(UnacceptableRollover, match="not listed"):
            self._query("FAKE-A", "B1-A")

    def test_junior_class_in(self):
        with pytest.raises(UnacceptableRollover, match="accepted tranche class"):
            self._query("B2-Z", "B1-A")

    @pytest.mark.parametrize("token_in", ["FEE", "NOPE", "AMPL"])
    def test_non_tranche_in(self, token_in):
        with pytest.raises(UnacceptableRollover, match="not a tranche"):
            self._query(token_in, "B1-A")

    def test_out_not_in_reserve(self):
        with pytest.raises(UnacceptableRollover, match="not in the reserve"):
            self._query("B2-A", "B1-Z")

    def test_out_still_acceptable(self):
        with pytest.raises(UnacceptableRollover, match="still acceptable"):
            self._query("B2-A", "B2-A")

    def test_out_same_bond(self):
        with pytest.raises(UnacceptableRollover, match="same bond"):
            self._query("B2-A", "B2-Z")

    def test_collateral_out_allowed(self):
        result = self._query("B2-A", "AMPL", reserve={"AMPL": "500"})
        assert result == RolloverAmounts(Decimal("100"), Decimal("100"))

    def test_is_acceptable_for_reserve(self):
        view = rollover_view({})
        terms, _ = load_reserve(view, "SPOT")
        registry = make_registry()
        assert is_acceptable_for_reserve(registry, terms, "B2-A")
        assert not is_acceptable_for_reserve(registry, terms, "B2-Z")
        assert not is_acceptable_for_reserve(registry, terms, "B1-A")
        assert not is_acceptable_for_reserve(registry, terms, "AMPL")


class TestComputeRolloverAmount:
    """Query with explicit caps and strategies."""

    def test_max_token_out_caps(self):
        view = rollover_view({"B1-A": "500"})
        result = compute_rollover_amount(
            view, "SPOT", make_registry(), UnitPricingStrategy(), BasicFeeStrategy("SPOT"),
            "B2-A", "B1-A", Decimal("100"), max_token_out=Decimal("40"),
        )
        assert result == RolloverAmounts(Decimal("40"), Decimal("40"))

    def test_reserve_balance_caps(self):
        view = rollover_view({"B1-A": "50"})
        result = compute_rollover_amount(
            view, "SPOT", make_registry(), UnitPricingStrategy(), BasicFeeStrategy("SPOT"),
            "B2-A", "B1-A", Decimal("100"),
        )
        assert result == RolloverAmounts(Decimal("50"), Decimal("50"))

    def test_unpriced_tranche(self):
        view = rollover_view({"B1-A": "500"})
        result = compute_rollover_amount(
            view, "SPOT", make_registry(), StaticPricingStrategy({"B2-A": Decimal("1")}),
            BasicFeeStrategy("SPOT"), "B2-A", "B1-A", Decimal("100"),
        )
        assert result == NO_ROLLOVER

    def test_collateral_priced_at_one(self):
        view = rollover_view({"AMPL": "1000"}, notional=Decimal("500"))
        result = compute_rollover_amount(
            view, "SPOT", make_registry(), StaticPricingStrategy({"B2-A": Decimal("0.5")}),
            BasicFeeStrategy("SPOT"), "B2-A", "AMPL", Decimal("100"),
        )
        assert result == RolloverAmounts(Decimal("50"), Decimal("100"))


class TestComputeRollover:
    """PendingTransaction for a rollover."""

    def _rollover(self, view, token_out, requested, pricing=None):
        return compute_rollover(
            view, "SPOT", "alice", make_registry(), pricing or UnitPricingStrategy(),
            BasicFeeStrategy("SPOT"), "B2-A", token_out, Decimal(requested),
        )

    def test_moves_and_events(self):
        pending = self._rollover(rollover_view({"B1-A": "500"}), "B1-A", "100")
        assert pending.moves == (
            Move(Decimal("100"), "B2-A", "alice", "reserve", "rollover_in", spender="reserve"),
            Move(Decimal("100"), "B1-A", "reserve", "alice", "rollover_out"),
        )
        assert pending.events == (
            ReserveSynced("B2-A", Decimal("100")),
            ReserveSynced("B1-A", Decimal("400")),
        )
        (change,) = pending.state_changes
        assert change.new_state['reserve_assets'] == ["AMPL", "B1-A", "B2-A"]
        assert pending.origin.event_type == "ROLLOVER"

    def test_full_outflow_prunes_asset(self):
        pending = self._rollover(rollover_view({"B1-A": "500"}), "B1-A", "500")
        (change,) = pending.state_changes
        assert change.new_state['reserve_assets'] == ["AMPL", "B2-A"]

    def test_collateral_out_reduces_notional(self):
        pending = self._rollover(rollover_view({"AMPL": "750"}, notional=Decimal("500")), "AMPL", "300")
        assert pending.events == (
            UpdatedMatureTrancheBalance(Decimal("300")),
            ReserveSynced("B2-A", Decimal("300")),
            ReserveSynced("AMPL", Decimal("450")),
        )
        (change,) = pending.state_changes
        assert change.new_state['mature_tranche_balance'] == Decimal("300")
        assert change.new_state['reserve_assets'] == ["AMPL", "B2-A"]

    def test_zero_amounts_yield_empty_transaction(self):
        pending = self._rollover(
            rollover_view({"B1-A": "500"}), "B1-A", "100", pricing=StaticPricingStrategy({}),
        )
        assert pending.is_empty()

    def test_invalid_pair_raises(self):
        with pytest.raises(UnacceptableRollover):
            self._rollover(rollover_view({"B1-A": "500"}), "B1-Z", "100")
