"""
ledger.py - Stateful Double-Entry Ledger for the Stablecoin Vault

The Ledger class is the encompassing ledger the vault runs on. It is the only
module that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves and state changes or nothing)
    - Rejects transactions built against a stale unit state
    - Maintains wallet balances (int base units) and unit definitions
    - Tracks time and rebuilds state from the log (clone, replay)
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Set, Optional, Tuple, Any
import copy

from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions, UnitState, BalanceMap,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    LedgerError, UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state,
)


class Ledger:
    """
    Double-entry ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    Every transaction is validated (registration, balances, timestamp and
    the old_state of each state change) and every applied transaction is
    logged, which is what makes replay() possible.

    Not thread-safe. Triggers are applied one at a time.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(reserve_asset())
        ledger.register_wallet("alice")
        ledger.register_wallet("vault")

        tx = build_transaction(ledger, [
            Move(10**9, "GBYTE", "alice", "vault", "t1:payment")
        ])
        result = ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print registrations and transaction results (default: True)
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self.last_rejection: Optional[str] = None
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # unit -> {wallet -> quantity}, only non-zero holdings
        self._positions_by_unit: Dict[str, Dict[str, int]] = defaultdict(dict)

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        The returned dict can be mutated freely without affecting the ledger.
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return copy.deepcopy(self.units[unit_symbol].state)

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero holdings of a unit across all wallets."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return {sym: qty for sym, qty in self.balances[wallet_id].items() if qty != 0}

    def total_supply(self, unit_symbol: str) -> int:
        """
        Total held across all non-system wallets.

        For units issued through the system wallet this equals the amount
        issued minus the amount burned.
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            self.balances[w].get(unit_symbol, 0)
            for w in sorted(self.registered_wallets)
            if w != SYSTEM_WALLET
        )

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that every unit's balances, system wallet included, sum to zero.

        Every unit enters the ledger through the system wallet, so a
        non-zero sum means a move was applied to one side only or a
        balance was forced with set_balance().

        Returns:
            Dict with 'valid' (bool), 'sums' (unit -> sum) and
            'discrepancies' (units whose sum is not zero)
        """
        sums = {}
        discrepancies = []
        for unit_symbol in sorted(self.units):
            total = sum(
                self.balances[w].get(unit_symbol, 0)
                for w in sorted(self.registered_wallets)
            )
            sums[unit_symbol] = total
            if total != 0:
                discrepancies.append({'unit': unit_symbol, 'sum': total})
        return {
            'valid': not discrepancies,
            'sums': sums,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register a wallet if it is not registered yet."""
        if wallet_id not in self.registered_wallets:
            self.register_wallet(wallet_id)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """
        Set a wallet's balance for a unit directly.

        Bypasses double-entry accounting and is only available in test mode.
        Balances set this way are not part of the log and are not replayed.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValueError(f"quantity must be int base units, got {type(quantity)}")
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and state changes apply together or not at all. A pending
        transaction whose intent_id was already applied is not applied twice.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if the intent was already executed
            ExecuteResult.REJECTED if validation failed (reason in last_rejection)
        """
        self.last_rejection = None

        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        # Units created by this transaction are registered for validation and
        # removed again if validation fails.
        newly_registered_units: List[str] = []
        for unit in pending.units_to_create:
            if unit.symbol in self.units:
                return self._reject(newly_registered_units, f"unit already registered: {unit.symbol}")
            self.units[unit.symbol] = unit
            newly_registered_units.append(unit.symbol)

        valid, reason = self._validate_pending(pending)
        if not valid:
            return self._reject(newly_registered_units, reason)

        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
        )

        self._execute_moves(tx.moves)

        for sc in tx.state_changes:
            old_unit = self.units[sc.unit]
            new_state = copy.deepcopy(sc.new_state if isinstance(sc.new_state, dict) else {})
            self.units[sc.unit] = replace(old_unit, _frozen_state=_freeze_state(new_state))

        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            for symbol in newly_registered_units:
                unit = self.units[symbol]
                print(f"Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")
            print(f"{tx!r}\n  -> APPLIED")
        return ExecuteResult.APPLIED

    def _reject(self, newly_registered_units: List[str], reason: str) -> ExecuteResult:
        for sym in newly_registered_units:
            del self.units[sym]
        self.last_rejection = reason
        if self.verbose:
            print(f"REJECTED: {reason}")
        return ExecuteResult.REJECTED

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate a pending transaction against all constraints.

        Checks performed:
        1. Timestamp (transaction must not be from the future)
        2. Unit and wallet registration
        3. Balance constraints (min/max balance limits)
        4. State changes target registered units and were built from
           the unit's current state

        Returns:
            (True, "") on success, (False, reason) otherwise
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"

        net: Dict[Tuple[str, str], int] = {}
        for move in pending.moves:
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        # SYSTEM_WALLET is exempt: it is where issued units come from
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[unit_sym]
            proposed = self.balances[wallet][unit_sym] + delta
            if proposed < unit.min_balance:
                return False, f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if unit.max_balance is not None and proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"
            if sc.old_state is None:
                continue
            current_state = self.units[sc.unit].state
            old_state = sc.old_state if isinstance(sc.old_state, dict) else {}
            for key in sorted(set(old_state) | set(current_state), key=str):
                if old_state.get(key) != current_state.get(key):
                    return False, (
                        f"stale state for {sc.unit}.{key}: "
                        f"expected {old_state.get(key)!r}, found {current_state.get(key)!r}"
                    )

        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        for move in moves:
            new_src_balance = self.balances[move.source][move.unit_symbol] - move.quantity
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)

            new_dst_balance = self.balances[move.dest][move.unit_symbol] + move.quantity
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a fully independent deep copy of this ledger.

        Includes units and their state, wallets and balances, the
        transaction log, the current time and configuration.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.last_rejection = None

        cloned.units = {
            symbol: replace(unit, _frozen_state=_freeze_state(copy.deepcopy(unit.state)))
            for symbol, unit in self.units.items()
        }

        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {
            wallet: defaultdict(int, bals) for wallet, bals in self.balances.items()
        }
        cloned._positions_by_unit = defaultdict(dict)
        for unit_symbol, positions in self._positions_by_unit.items():
            cloned._positions_by_unit[unit_symbol] = dict(positions)

        return cloned

    def replay(self, from_tx: int = 0) -> Ledger:
        """
        Create a new ledger by re-executing the transaction log in order.

        Units created by logged transactions are recreated by those
        transactions; all other units are copied with their definition and
        the state they were registered with. Balances set via set_balance()
        are not in the log and are not replayed.

        Raises:
            LedgerError: If a logged transaction is rejected during replay
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            initial_time=datetime(1970, 1, 1),
            verbose=self.verbose,
            test_mode=self._test_mode
        )

        created_in_log = {
            unit.symbol
            for tx in self.transaction_log[from_tx:]
            for unit in tx.units_to_create
        }
        first_states = {}
        for tx in self.transaction_log[from_tx:]:
            for sc in tx.state_changes:
                first_states.setdefault(sc.unit, sc.old_state)

        for symbol, unit in self.units.items():
            if symbol in created_in_log:
                continue
            initial_state = first_states.get(symbol, unit.state) or {}
            new_ledger.units[symbol] = replace(
                unit, _frozen_state=_freeze_state(copy.deepcopy(initial_state))
            )

        for wallet in sorted(self.registered_wallets):
            if wallet != SYSTEM_WALLET:
                new_ledger.register_wallet(wallet)

        for tx in self.transaction_log[from_tx:]:
            if tx.timestamp > new_ledger._current_time:
                new_ledger.advance_time(tx.timestamp)

            pending = PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                timestamp=tx.timestamp,
                units_to_create=tx.units_to_create,
            )
            result = new_ledger.execute(pending)
            if result == ExecuteResult.REJECTED:
                raise LedgerError(
                    f"Replay failed at tx {tx.exec_id}: {new_ledger.last_rejection}"
                )

        if self._current_time > new_ledger._current_time:
            new_ledger.advance_time(self._current_time)
        return new_ledger
