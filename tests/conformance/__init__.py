"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the reserve engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Double-entry accounting and reserve bookkeeping
2. atomicity.py - All-or-nothing redemption and rollover
3. determinism.py - Reproducible behavior, side-effect-free queries
4. redemption_properties.py - Pro-rata redemption bounds
5. rollover_properties.py - Rollover bounds and the coverage cap

These tests use hypothesis for property-based testing.
"""
