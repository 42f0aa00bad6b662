"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the margin engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. solvency.py - Pool solvency and index monotonicity
2. collateral_gates.py - Initial-ratio gate, reduce-only trading, liquidation gate
3. socialization.py - Loss socialization conserves value
4. atomicity.py - All-or-nothing operation semantics

These tests use hypothesis for property-based testing.
"""
