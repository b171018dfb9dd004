"""
conftest.py - Shared pytest fixtures for vault tests

Provides common fixtures used across unit, functional and conformance tests:
- Ledgers with the reserve asset registered
- Oracle with spot and moving average at 20
- Engines with a deployed vault, a defined asset and an open loan

Constants and plain builders live in tests/builders.py.
"""

import pytest

from stablecoin import Ledger, Trigger, reserve_asset

from tests.builders import (
    T0, GBYTE, VAULT, RESERVE, LOAN_ID, LOAN_COLLATERAL, LOAN_PRINCIPAL,
    make_engine, make_oracle,
)


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", T0, verbose=False, test_mode=True)


@pytest.fixture
def reserve_ledger():
    """Ledger with the reserve asset, alice holding 100 GBYTE."""
    ledger = Ledger("test", T0, verbose=False, test_mode=True)
    ledger.register_unit(reserve_asset(RESERVE))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    ledger.set_balance("alice", RESERVE, 100 * GBYTE)
    return ledger


@pytest.fixture
def oracle():
    """Oracle that has published spot 20 and moving average 20 at T0."""
    return make_oracle()


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """Deployed vault, asset not defined yet."""
    return make_engine(define=False)


@pytest.fixture
def defined_engine():
    """Deployed vault whose pegged asset is defined."""
    return make_engine()


@pytest.fixture
def loan_engine(defined_engine):
    """Alice has borrowed 2000 (20.00 USD) against 1.5 GBYTE."""
    response = defined_engine.submit(VAULT, Trigger(LOAN_ID, "alice", {RESERVE: LOAN_COLLATERAL}))
    assert not response.bounced
    assert response.response_vars["amount"] == LOAN_PRINCIPAL
    return defined_engine
