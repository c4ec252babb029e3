"""
conftest.py - Shared pytest fixtures for reserve tests

Provides common fixtures used across unit, conformance and functional tests:
- A ledger with collateral, claim token, fee token and two tranched bonds
- A ready ReserveGuard
- A ready PerpetualTranche
"""

import pytest
from decimal import Decimal

from perp_reserve import ReserveGuard

from tests.reserve_setup import (
    KEEPER, OLD_SENIOR, OLD_JUNIOR,
    make_registry, make_ledger, make_perp as build_perp, seed_reserve,
)


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def registry():
    """B1 (older) and B2 (current deposit bond), two tranches each."""
    return make_registry()


@pytest.fixture
def ledger(registry):
    """Ledger with collateral, claim token, fee token, tranches and wallets."""
    return make_ledger(registry)


@pytest.fixture
def guard():
    return ReserveGuard(KEEPER)


@pytest.fixture
def make_perp(ledger, registry):
    """Factory building a PerpetualTranche over the shared ledger."""
    def _make(**kwargs):
        return build_perp(ledger, registry, **kwargs)
    return _make


@pytest.fixture
def perp(make_perp):
    """PerpetualTranche with par pricing and no fees."""
    return make_perp()


@pytest.fixture
def two_tranche_reserve(ledger):
    """Two tranches at 500 each, no collateral, supply 750 held by alice."""
    seed_reserve(
        ledger,
        {OLD_SENIOR: Decimal("500"), OLD_JUNIOR: Decimal("500")},
        holders={"alice": Decimal("750")},
    )
    return ledger
