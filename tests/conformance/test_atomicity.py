"""
Atomicity Conformance Tests

INVARIANT: A trigger either applies completely or changes nothing but the
refund of its payments.

    ∀ trigger t with submit(t).bounced:
        vault state after = vault state before
        sender pegged balance after = before
        sender reserve after = before - min(paid reserve, processing_fee)

    ∀ pending transaction T with execute(T) = REJECTED:
        ledger after = ledger before
"""

import pytest
from hypothesis import given, settings

from stablecoin import Move, ExecuteResult, Trigger, LedgerError, build_transaction

from tests.builders import (
    VAULT, RESERVE, ASSET_ID, LOAN_ID, GBYTE, FEE,
    make_engine, build_trigger, operations, post_prices, balance, compare_ledger_states,
)


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(operations())
    @settings(max_examples=50, deadline=None)
    def test_bounces_leave_vault_untouched(self, ops):
        """
        PROPERTY: A bounced trigger keeps the vault state and refunds the
        sender everything except at most the processing fee.
        """
        engine = make_engine()
        for index, operation in enumerate(ops):
            if operation[0] == "prices":
                post_prices(engine, spot=operation[3], ma=operation[3])
                continue
            trigger = build_trigger(engine, index, operation)
            if trigger is None:
                continue

            state_before = engine.ledger.get_unit_state(VAULT)
            reserve_before = balance(engine, trigger.sender)
            tokens_before = balance(engine, trigger.sender, ASSET_ID)

            response = engine.submit(VAULT, trigger)
            if not response.bounced:
                continue

            assert response.error
            assert response.response_vars == {}
            assert engine.ledger.get_unit_state(VAULT) == state_before
            assert balance(engine, trigger.sender, ASSET_ID) == tokens_before
            fee = min(trigger.paid(RESERVE), FEE)
            assert balance(engine, trigger.sender) == reserve_before - fee


class TestAtomicityExamples:
    """Explicit atomicity examples."""

    def test_failed_payout_rolls_back_payments(self, reserve_ledger):
        tx = build_transaction(reserve_ledger, [
            Move(GBYTE, RESERVE, "alice", "bob", "t1:payment"),
            Move(2 * GBYTE, RESERVE, "bob", "alice", "t1:payout"),
        ])
        snapshot = reserve_ledger.clone()

        assert reserve_ledger.execute(tx) == ExecuteResult.REJECTED
        assert reserve_ledger.last_rejection
        assert compare_ledger_states(reserve_ledger, snapshot)["equal"]
        assert reserve_ledger.transaction_log == []

    def test_unpayable_trigger_changes_nothing(self, defined_engine):
        snapshot = defined_engine.ledger.clone()

        with pytest.raises(LedgerError):
            defined_engine.submit(VAULT, Trigger("x1", "dave", {RESERVE: GBYTE}, {"mint": 1}))

        assert compare_ledger_states(defined_engine.ledger, snapshot)["equal"]
        assert defined_engine.ledger.get_unit_state(VAULT) == snapshot.get_unit_state(VAULT)

    def test_repay_moves_apply_together(self, loan_engine):
        """Payment, burn and collateral release land in one transaction."""
        loan_engine.submit(VAULT, Trigger("p1", "alice", {ASSET_ID: 2000}, {"repay": 1, "id": LOAN_ID}))
        tx = loan_engine.ledger.transaction_log[-1]

        assert tx.origin.event_type == "REPAY"
        legs = sorted(move.contract_id for move in tx.moves)
        assert legs == ["p1:burn", "p1:collateral", "p1:payment"]
        assert len(tx.state_changes) == 1

    def test_define_registers_token_with_state(self, engine):
        engine.submit(VAULT, Trigger("d1", "alice", {RESERVE: 10_000}, {"define": 1}))
        tx = engine.ledger.transaction_log[-1]

        assert [unit.symbol for unit in tx.units_to_create] == ["d1"]
        assert tx.state_changes[0].new_state['asset'] == "d1"
