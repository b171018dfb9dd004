"""
engine.py - Vault Engine

Drives vaults on a Ledger: deploys them, feeds them triggers one at a time
and runs the keeper that performs due lifecycle actions.

Execution order each step():
1. Advance ledger time
2. Poll the keeper contract of every vault (sorted by symbol)
3. Repeat until no keeper action fires (one settlement can follow another)

Each trigger is processed exactly once: responses are cached by trigger_id
and a re-submitted trigger gets the cached response without touching the
ledger. The transaction log is the audit trail.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Any

from .core import (
    LedgerView, PendingTransaction, Transaction, TransactionOrigin, OriginType,
    ExecuteResult, LedgerError, SmartContract, Move,
    UNIT_TYPE_STABLECOIN_VAULT, SYSTEM_WALLET,
    build_transaction, empty_pending_transaction,
)
from .expiry import is_expiry_due
from .ledger import Ledger
from .oracle import PricingSource, reading_from_prices
from .router import process_trigger, transact
from .triggers import Trigger, Response
from .vault import VaultParams, create_vault, load_vault, state_vars, to_epoch_seconds


KEEPER = "keeper"


def _as_lifecycle(pending: PendingTransaction, symbol: str, event_type: str) -> PendingTransaction:
    return PendingTransaction(
        moves=pending.moves,
        state_changes=pending.state_changes,
        origin=TransactionOrigin(OriginType.LIFECYCLE, KEEPER, symbol, event_type),
        timestamp=pending.timestamp,
        units_to_create=pending.units_to_create,
    )


def vault_contract(
    view: LedgerView,
    symbol: str,
    timestamp: datetime,
    prices: Dict[str, Decimal]
) -> PendingTransaction:
    """
    SmartContract function for keeper actions on a vault.

    Returns at most one action per call, in this order of priority:
    record the expiry rate once it is due and the moving average is
    available, then settle the first auction (by loan id) whose deadline
    has passed. Returns an empty transaction when nothing is due.
    """
    params, state = load_vault(view, symbol)
    ts = timestamp.strftime("%Y%m%dT%H%M%S")

    if is_expiry_due(params, state, timestamp):
        reading = reading_from_prices(prices, params)
        if reading.moving_average is not None and reading.moving_average > 0:
            trigger = Trigger(f"{KEEPER}:expire:{ts}", KEEPER)
            result = transact(view, symbol, 'RECORD_EXPIRY', trigger, reading)
            return _as_lifecycle(result.pending, symbol, 'RECORD_EXPIRY')

    now = to_epoch_seconds(timestamp)
    for loan_id in sorted(state.positions):
        position = state.positions[loan_id]
        if position.auction_active and now >= position.auction_end_ts:
            trigger = Trigger(f"{KEEPER}:end_auction:{loan_id}:{ts}", KEEPER, data={'id': loan_id})
            result = transact(view, symbol, 'END_AUCTION', trigger)
            return _as_lifecycle(result.pending, symbol, 'END_AUCTION')

    return empty_pending_transaction(view)


class VaultEngine:
    """
    Runs stablecoin vaults on a ledger.

    Features:
    - Deployment as a logged transaction, so replay() rebuilds the vault
    - Exactly-once trigger processing with cached responses
    - Keeper polling for expiry recording and auction settlement
    """

    def __init__(
        self,
        ledger: Ledger,
        pricing_source: Optional[PricingSource] = None,
        contract: Optional[SmartContract] = None,
        verbose: Optional[bool] = None,
    ):
        """
        Args:
            ledger: The ledger to operate on (reserve asset already registered)
            pricing_source: Oracle feeds read at the start of each operation
            contract: Keeper contract (vault_contract if not provided)
            verbose: Print bounced triggers (defaults to ledger.verbose)
        """
        self.ledger = ledger
        self.pricing_source = pricing_source
        self.contract = contract or vault_contract
        self.verbose = ledger.verbose if verbose is None else verbose
        self.responses: Dict[str, Response] = {}

        self.max_passes = 100

    def deploy(self, symbol: str, name: str, params: VaultParams) -> str:
        """
        Create a vault and register its wallet.

        Raises:
            ValueError: If parameters are invalid
            LedgerError: If the reserve asset is not registered or the
                vault symbol is taken
        """
        unit = create_vault(symbol, name, params)
        if params.reserve_asset not in self.ledger.units:
            raise LedgerError(f"reserve asset {params.reserve_asset} not registered")
        self.ledger.ensure_wallet(params.vault_wallet)

        pending = build_transaction(
            self.ledger, [],
            origin=TransactionOrigin(OriginType.SYSTEM, f"deploy:{symbol}", symbol, "DEPLOY"),
            units_to_create=(unit,),
        )
        self._execute(pending, f"deploy {symbol}")
        return symbol

    def fund(self, wallet: str, unit_symbol: str, quantity: int) -> None:
        """Issue `quantity` of a unit to a wallet from the system wallet."""
        self.ledger.ensure_wallet(wallet)
        pending = build_transaction(
            self.ledger,
            [Move(quantity, unit_symbol, SYSTEM_WALLET, wallet, f"fund:{wallet}:{len(self.ledger.transaction_log)}")],
            origin=TransactionOrigin(OriginType.SYSTEM, f"fund:{wallet}", event_type="FUND"),
        )
        self._execute(pending, f"fund {wallet}")

    def submit(self, symbol: str, trigger: Trigger) -> Response:
        """
        Process a trigger exactly once and return its response.

        Re-submitting a trigger_id returns the first response without
        processing it again.

        Raises:
            LedgerError: If the ledger rejects the resulting transaction
                (e.g. the sender cannot cover the attached payment)
        """
        cached = self.responses.get(trigger.trigger_id)
        if cached is not None:
            return cached

        self.ledger.ensure_wallet(trigger.sender)
        result = process_trigger(self.ledger, symbol, trigger, self.pricing_source)
        self._execute(result.pending, f"trigger {trigger.trigger_id}")

        if self.verbose and result.response.bounced:
            print(f"BOUNCED {trigger.trigger_id}: {result.response.error}")

        self.responses[trigger.trigger_id] = result.response
        return result.response

    def step(self, timestamp: datetime) -> List[Transaction]:
        """
        Advance time and execute all due keeper actions.

        Returns:
            List of executed transactions
        """
        self.ledger.advance_time(timestamp)
        executed: List[Transaction] = []

        for _ in range(self.max_passes):
            pass_executed = self._poll_contracts(timestamp)
            executed.extend(pass_executed)
            if not pass_executed:
                break

        return executed

    def _poll_contracts(self, timestamp: datetime) -> List[Transaction]:
        executed: List[Transaction] = []

        for symbol in sorted(self.ledger.units.keys()):
            unit = self.ledger.units[symbol]
            if unit.unit_type != UNIT_TYPE_STABLECOIN_VAULT:
                continue

            params, _ = load_vault(self.ledger, symbol)
            prices = self._prices(params, timestamp)

            pending = self.contract(self.ledger, symbol, timestamp, prices)

            if not isinstance(pending, PendingTransaction):
                raise LedgerError(
                    f"Contract for {symbol} must return PendingTransaction, got {type(pending)}"
                )
            if pending.is_empty():
                continue

            if self._execute(pending, f"keeper {symbol}") == ExecuteResult.APPLIED:
                executed.append(self.ledger.transaction_log[-1])

        return executed

    def _prices(self, params: VaultParams, timestamp: datetime) -> Dict[str, Decimal]:
        if self.pricing_source is None or self.pricing_source.oracle != params.oracle:
            return {}
        return self.pricing_source.get_prices({params.feed_name, params.ma_feed_name}, timestamp)

    def _execute(self, pending: PendingTransaction, label: str) -> ExecuteResult:
        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise LedgerError(f"{label} rejected: {self.ledger.last_rejection}")
        return result

    def state_vars(self, symbol: str) -> Dict[str, Any]:
        """The externally visible key-value state of a vault."""
        return state_vars(self.ledger, symbol)
