"""
test_engine.py - Unit tests for VaultEngine and the keeper contract

Tests:
- Deployment and funding as logged transactions
- submit(): exactly-once responses, bounces, ledger rejections
- step(): keeper records expiry and settles ended auctions
- Custom keeper contracts
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from stablecoin import (
    Ledger, VaultEngine, Trigger, LedgerError, OriginType,
    reserve_asset, vault_contract, empty_pending_transaction, load_vault,
)

from tests.builders import (
    T0, EXPIRY, GBYTE, VAULT, RESERVE, ASSET_ID, LOAN_ID, FEE,
    make_params, post_prices, balance,
)


class TestDeployment:

    def test_deploy_registers_vault(self, engine):
        params, state = load_vault(engine.ledger, VAULT)
        assert params == make_params()
        assert state.asset is None
        assert engine.ledger.is_registered("vault")
        assert engine.ledger.transaction_log[0].origin.event_type == "DEPLOY"

    def test_deploy_twice(self, engine):
        with pytest.raises(LedgerError):
            engine.deploy(VAULT, "again", make_params())

    def test_deploy_without_reserve_asset(self):
        engine = VaultEngine(Ledger("bare", T0, verbose=False))
        with pytest.raises(LedgerError, match="GBYTE"):
            engine.deploy(VAULT, "USD stablecoin", make_params())

    def test_deploy_invalid_params(self, engine):
        with pytest.raises(ValueError):
            engine.deploy("OTHER", "x", make_params(auction_period=0))

    def test_fund(self, engine):
        assert balance(engine, "alice") == 100 * GBYTE
        assert engine.ledger.total_supply(RESERVE) == 300 * GBYTE


class TestSubmit:

    def test_define(self, engine):
        response = engine.submit(VAULT, Trigger("d1", "alice", data={"define": 1}))
        assert response.response_vars == {'asset': "d1"}
        assert engine.state_vars(VAULT) == {'asset': "d1", 'circulating_supply': 0}
        assert engine.ledger.get_unit("d1").name == "USD stablecoin token"

    def test_resubmission_returns_cached_response(self, loan_engine):
        log_size = len(loan_engine.ledger.transaction_log)
        response = loan_engine.submit(VAULT, Trigger(LOAN_ID, "alice", {RESERVE: 1_500_000_000}))
        assert response.response_vars == {'id': LOAN_ID, 'amount': 2000}
        assert len(loan_engine.ledger.transaction_log) == log_size
        assert balance(loan_engine, "alice", ASSET_ID) == 2000

    def test_bounce_charges_fee(self, defined_engine):
        before = balance(defined_engine, "bob")
        response = defined_engine.submit(VAULT, Trigger("x1", "bob", {RESERVE: GBYTE}, {"repay": 1, "id": "nope"}))
        assert response.bounced
        assert response.error == "no such loan"
        assert balance(defined_engine, "bob") == before - FEE

    def test_bounced_trigger_is_not_retried(self, defined_engine):
        trigger = Trigger("x1", "bob", {RESERVE: GBYTE}, {"repay": 1, "id": "nope"})
        defined_engine.submit(VAULT, trigger)
        before = balance(defined_engine, "bob")
        assert defined_engine.submit(VAULT, trigger).bounced
        assert balance(defined_engine, "bob") == before

    def test_sender_cannot_pay(self, defined_engine):
        with pytest.raises(LedgerError, match="rejected"):
            defined_engine.submit(VAULT, Trigger("x1", "dave", {RESERVE: GBYTE}))
        assert "x1" not in defined_engine.responses

    def test_new_sender_gets_a_wallet(self, defined_engine):
        defined_engine.submit(VAULT, Trigger("x1", "dave", data={"expire": 1}))
        assert defined_engine.ledger.is_registered("dave")


class TestKeeper:

    def test_nothing_due(self, loan_engine):
        assert loan_engine.step(T0 + timedelta(days=1)) == []

    def test_records_expiry(self, loan_engine):
        post_prices(loan_engine, spot="25", ma="22", at=EXPIRY)
        executed = loan_engine.step(EXPIRY)

        assert len(executed) == 1
        assert executed[0].origin.origin_type == OriginType.LIFECYCLE
        assert executed[0].origin.event_type == "RECORD_EXPIRY"
        assert loan_engine.state_vars(VAULT)['expiry_exchange_rate'] == Decimal("22")
        assert loan_engine.step(EXPIRY + timedelta(hours=1)) == []

    def test_waits_for_moving_average(self):
        ledger = Ledger("vault", T0, verbose=False)
        ledger.register_unit(reserve_asset(RESERVE))
        engine = VaultEngine(ledger)
        engine.deploy(VAULT, "USD stablecoin", make_params())
        assert engine.step(EXPIRY) == []

    def test_settles_ended_auction(self, loan_engine):
        post_prices(loan_engine, spot="17", ma="17")
        response = loan_engine.submit(VAULT, Trigger("s1", "bob", {RESERVE: 29_411_765}, {"seize": 1, "id": LOAN_ID}))
        assert not response.bounced

        assert loan_engine.step(T0 + timedelta(minutes=59)) == []
        executed = loan_engine.step(T0 + timedelta(hours=1))

        assert [tx.origin.event_type for tx in executed] == ["END_AUCTION"]
        state = loan_engine.state_vars(VAULT)
        assert state[f'{LOAN_ID}_owner'] == "bob"
        assert state[f'{LOAN_ID}_collateral'] == 29_411_765
        assert f'{LOAN_ID}_winner' not in state

    def test_expiry_and_settlement_in_one_step(self, loan_engine):
        post_prices(loan_engine, spot="17", ma="17")
        loan_engine.submit(VAULT, Trigger("s1", "bob", {RESERVE: 29_411_765}, {"seize": 1, "id": LOAN_ID}))

        executed = loan_engine.step(EXPIRY)
        assert [tx.origin.event_type for tx in executed] == ["RECORD_EXPIRY", "END_AUCTION"]

    def test_vault_contract_is_pure(self, loan_engine):
        loan_engine.ledger.advance_time(EXPIRY)
        before = loan_engine.ledger.get_unit_state(VAULT)
        pending = vault_contract(loan_engine.ledger, VAULT, EXPIRY, {"GBYTE_USD_MA": Decimal("22")})
        assert not pending.is_empty()
        assert loan_engine.ledger.get_unit_state(VAULT) == before

    def test_custom_contract(self, loan_engine):
        calls = []

        def recorder(view, symbol, timestamp, prices):
            calls.append((symbol, timestamp, dict(prices)))
            return empty_pending_transaction(view)

        engine = VaultEngine(loan_engine.ledger, loan_engine.pricing_source, contract=recorder)
        engine.step(T0 + timedelta(days=1))
        assert calls == [(VAULT, T0 + timedelta(days=1), {"GBYTE_USD": Decimal("20"), "GBYTE_USD_MA": Decimal("20")})]

    def test_contract_must_return_pending(self, loan_engine):
        engine = VaultEngine(loan_engine.ledger, contract=lambda view, symbol, ts, prices: None)
        with pytest.raises(LedgerError, match="PendingTransaction"):
            engine.step(T0 + timedelta(days=1))
