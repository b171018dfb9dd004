"""
test_afterlife.py - The vault after its expiry date

Scenario:
1. Recording the expiry rate before the expiry date fails
2. At expiry anyone records the moving average as the frozen rate
3. Mint, redeem and new loans are refused from then on
4. Existing loans can still be repaid
5. Seizing is judged against the frozen rate, not the live feeds
"""

from datetime import timedelta
from decimal import Decimal

from stablecoin import Trigger

from tests.builders import (
    EXPIRY, VAULT, RESERVE, ASSET_ID, LOAN_ID, LOAN_COLLATERAL, GBYTE, FEE,
    balance, post_prices,
)


def expire(engine, trigger_id, sender="bob"):
    return engine.submit(VAULT, Trigger(trigger_id, sender, data={"expire": 1}))


def freeze_rate(engine, spot, ma):
    engine.ledger.advance_time(EXPIRY)
    post_prices(engine, spot=spot, ma=ma)
    response = expire(engine, "expire-1")
    assert not response.bounced
    return response


class TestAfterlife:

    def test_too_early(self, loan_engine):
        loan_engine.ledger.advance_time(EXPIRY - timedelta(seconds=1))
        response = expire(loan_engine, "e0")
        assert response.error == "too early to record the expiry exchange rate"
        assert 'expiry_exchange_rate' not in loan_engine.state_vars(VAULT)

    def test_full_afterlife(self, loan_engine):
        engine = loan_engine

        response = freeze_rate(engine, spot="25", ma="22")
        assert response.response_vars == {'expiry_exchange_rate': Decimal("22")}
        assert engine.state_vars(VAULT)['expiry_exchange_rate'] == Decimal("22")

        response = expire(engine, "expire-2", sender="charlie")
        assert response.error == "expiry exchange rate already recorded"

        # Mint is closed, the reserve comes back minus the fee
        before = balance(engine, "bob")
        response = engine.submit(VAULT, Trigger("m1", "bob", {RESERVE: GBYTE}, {"mint": 1}))
        assert response.error == "the stablecoin has expired"
        assert balance(engine, "bob") == before - FEE
        assert balance(engine, "bob", ASSET_ID) == 0

        # Redeem is closed, the tokens come back in full
        response = engine.submit(VAULT, Trigger("r1", "alice", {ASSET_ID: 1000}))
        assert response.error == "the stablecoin has expired"
        assert balance(engine, "alice", ASSET_ID) == 2000

        # No new loans
        response = engine.submit(VAULT, Trigger("b2", "charlie", {RESERVE: GBYTE}))
        assert response.error == "the stablecoin has expired"

        # Repay still works
        before = balance(engine, "alice")
        response = engine.submit(VAULT, Trigger("p1", "alice", {ASSET_ID: 2000}, {"repay": 1, "id": LOAN_ID}))
        assert response.response_vars == {'id': LOAN_ID, 'collateral': LOAN_COLLATERAL}
        assert balance(engine, "alice") == before + LOAN_COLLATERAL

        vars_ = engine.state_vars(VAULT)
        assert vars_['circulating_supply'] == 0
        assert vars_['expiry_exchange_rate'] == Decimal("22")
        assert engine.ledger.verify_double_entry()['valid']

    def test_issue_refused_at_expiry_date_without_record(self, defined_engine):
        defined_engine.ledger.advance_time(EXPIRY)
        response = defined_engine.submit(VAULT, Trigger("b1", "bob", {RESERVE: GBYTE}))
        assert response.error == "the stablecoin has expired"

    def test_frozen_rate_protects_loans(self, loan_engine):
        """A crash in the live feeds after expiry does not make loans seizable."""
        freeze_rate(loan_engine, spot="22", ma="22")
        post_prices(loan_engine, spot="5", ma="5")

        response = loan_engine.submit(
            VAULT, Trigger("s1", "bob", {RESERVE: 10 * GBYTE}, {"seize": 1, "id": LOAN_ID}),
        )
        assert response.error == "the loan is sufficiently collateralized, you can't seize it"

    def test_frozen_rate_exposes_loans(self, loan_engine):
        """A recovery in the live feeds after expiry does not rescue a loan."""
        freeze_rate(loan_engine, spot="17", ma="17")
        post_prices(loan_engine, spot="30", ma="30")

        response = loan_engine.submit(
            VAULT, Trigger("s1", "bob", {RESERVE: 29_411_765}, {"seize": 1, "id": LOAN_ID}),
        )
        assert response.response_vars == {'id': LOAN_ID, 'new_bid': 29_411_765}

    def test_keeper_records_expiry(self, loan_engine):
        post_prices(loan_engine, spot="25", ma="22", at=EXPIRY)
        executed = loan_engine.step(EXPIRY)

        assert [tx.origin.event_type for tx in executed] == ["RECORD_EXPIRY"]
        response = expire(loan_engine, "e1")
        assert response.error == "expiry exchange rate already recorded"

    def test_late_recording_uses_current_average(self, loan_engine):
        later = EXPIRY + timedelta(days=3)
        post_prices(loan_engine, spot="25", ma="22", at=EXPIRY)
        post_prices(loan_engine, spot="26", ma="24", at=later)
        loan_engine.ledger.advance_time(later)

        response = expire(loan_engine, "e1")
        assert response.response_vars == {'expiry_exchange_rate': Decimal("24")}
