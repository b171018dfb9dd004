"""
Supply Conformance Tests

INVARIANT: The vault's circulating_supply always equals the pegged tokens
held outside the system wallet.

    circulating_supply = total_supply(asset)
    circulating_supply = Σ principal of unrepaid loans
        (for sequences without mint or redeem)

Auctions change a loan's owner and collateral but never its principal,
so seizing and settling leave the supply untouched.
"""

from datetime import timedelta

from hypothesis import given, settings

from stablecoin import Trigger, load_vault

from tests.builders import (
    T0, VAULT, RESERVE, ASSET_ID, LOAN_ID, GBYTE,
    make_engine, apply_operations, operations, post_prices, LOAN_KINDS,
)


def open_principal(engine) -> int:
    _, state = load_vault(engine.ledger, VAULT)
    return sum(p.principal for p in state.positions.values() if not p.repaid)


def circulating(engine) -> int:
    return engine.state_vars(VAULT)['circulating_supply']


class TestSupplyProperties:
    """Property-based supply tests."""

    @given(operations())
    @settings(max_examples=50, deadline=None)
    def test_supply_matches_tokens_outstanding(self, ops):
        """
        PROPERTY: circulating_supply tracks the ledger after any sequence.
        """
        engine = make_engine()
        apply_operations(engine, ops)

        assert circulating(engine) == engine.ledger.total_supply(ASSET_ID)
        assert circulating(engine) >= 0

    @given(operations(kinds=LOAN_KINDS))
    @settings(max_examples=50, deadline=None)
    def test_loan_supply_matches_principal(self, ops):
        """
        PROPERTY: Without mint/redeem, the supply is the principal still owed.
        """
        engine = make_engine()
        apply_operations(engine, ops)

        assert circulating(engine) == open_principal(engine)

    @given(operations(kinds=LOAN_KINDS))
    @settings(max_examples=30, deadline=None)
    def test_settling_auctions_keeps_supply(self, ops):
        """
        PROPERTY: Letting every open auction end changes no principal.
        """
        engine = make_engine()
        apply_operations(engine, ops)
        before = circulating(engine)

        engine.step(T0 + timedelta(hours=2))

        assert circulating(engine) == before == open_principal(engine)
        _, state = load_vault(engine.ledger, VAULT)
        assert not any(p.auction_active for p in state.positions.values())


class TestSupplyExamples:
    """Explicit supply examples."""

    def test_issue_mint_redeem_repay(self, loan_engine):
        loan_engine.submit(VAULT, Trigger("m1", "bob", {RESERVE: GBYTE}, {"mint": 1}))
        assert circulating(loan_engine) == 3999

        loan_engine.submit(VAULT, Trigger("r1", "bob", {ASSET_ID: 999}))
        assert circulating(loan_engine) == 3000

        loan_engine.submit(VAULT, Trigger("p1", "alice", {ASSET_ID: 2000}, {"repay": 1, "id": LOAN_ID}))
        assert circulating(loan_engine) == 1000
        assert loan_engine.ledger.total_supply(ASSET_ID) == 1000

    def test_bounce_keeps_supply(self, loan_engine):
        loan_engine.submit(VAULT, Trigger("r1", "alice", {ASSET_ID: 1999}, {"repay": 1, "id": LOAN_ID}))
        assert circulating(loan_engine) == 2000

    def test_auction_keeps_supply(self, loan_engine):
        post_prices(loan_engine, spot="17", ma="17")
        loan_engine.submit(VAULT, Trigger("s1", "bob", {RESERVE: 29_411_765}, {"seize": 1, "id": LOAN_ID}))
        loan_engine.step(T0 + timedelta(hours=1))

        assert circulating(loan_engine) == 2000
        assert open_principal(loan_engine) == 2000
