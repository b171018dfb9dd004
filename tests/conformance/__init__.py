"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vault and its ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Double-entry accounting and reserve escrow
2. supply.py - circulating_supply tracks the tokens outstanding
3. atomicity.py - Bounces and rejections change nothing
4. idempotency.py - Duplicate triggers and transactions apply once
5. determinism.py - Same triggers, same state; replay rebuilds the ledger
6. temporal.py - Auction deadlines and expiry follow the ledger clock

These tests use hypothesis for property-based testing.
"""
