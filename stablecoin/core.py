"""
Core types and pure functions for the stablecoin vault.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access, SmartContract for keepers
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError, ledger rejections and the vault error taxonomy
4. Unit factories: reserve asset and pegged token units

All monetary quantities are non-negative integers in the smallest unit of
their asset. Prices and ratios are Decimal.

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Prices and ratios are Decimal. Money math converts them to exact rationals
# (see fixed_point.py), so the context only governs display-level values such
# as moving averages and reported collateral ratios.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
_VAULT_DECIMAL_CONTEXT = getcontext()
_VAULT_DECIMAL_CONTEXT.prec = 50
_VAULT_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and burning of pegged tokens.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

UNIT_TYPE_RESERVE = "RESERVE"
UNIT_TYPE_PEGGED_TOKEN = "PEGGED_TOKEN"
UNIT_TYPE_STABLECOIN_VAULT = "STABLECOIN_VAULT"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, int]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, int]

# Internal state for a unit (vault parameters and persisted variables).
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Vault operations, keepers and tests accept a LedgerView to declare that
    they only read. The Ledger class implements this protocol; FakeView in
    the test suite provides a minimal immutable implementation.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """Return the balance of a unit in a wallet (0 if none)."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero holdings of a unit across wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


class SmartContract(Protocol):
    """
    Protocol for keeper-driven contracts.

    The engine calls each contract with the current time and oracle prices;
    the contract returns a PendingTransaction (empty if nothing is due).
    """

    def __call__(
        self,
        view: LedgerView,
        symbol: str,
        timestamp: datetime,
        prices: Dict[str, Decimal],
    ) -> 'PendingTransaction':
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction intent was previously processed (idempotent).
    REJECTED: Transaction failed validation (funds, registration, stale state).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    TRIGGER = "trigger"           # A user message sent to the vault
    LIFECYCLE = "lifecycle"       # Keeper action (expiry, auction settlement)
    SYSTEM = "system"             # Funding and setup


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class VaultError(LedgerError):
    """
    Base class for vault rejections.

    Raised by vault operations before any state is written. The router turns
    it into a bounced Response with the attached payment refunded.
    """
    message = "rejected"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


# Precondition violations

class AlreadyDefined(VaultError):
    message = "asset already defined"


class AssetNotDefined(VaultError):
    message = "asset not defined yet"


class NotFound(VaultError):
    message = "no such loan"


class NotOwner(VaultError):
    message = "you are not the owner"


class AlreadyRepaid(VaultError):
    message = "already repaid"


class AuctionActive(VaultError):
    message = "auction is under way"


class StillRunning(VaultError):
    message = "auction still under way"


class AuctionExpired(VaultError):
    message = "auction already expired"


class Expired(VaultError):
    message = "the stablecoin has expired"


class TooEarly(VaultError):
    message = "too early to record the expiry exchange rate"


class AlreadyRecorded(VaultError):
    message = "expiry exchange rate already recorded"


class InvalidTrigger(VaultError):
    message = "unrecognized trigger"


class UnsupportedAsset(VaultError):
    message = "unsupported asset"


class MissingPayment(VaultError):
    message = "no payment attached"


# Economic violations

class BelowMinimum(VaultError):
    message = "amount too small"


class BidTooLow(VaultError):
    message = "bid too low"


class SufficientlyCollateralized(VaultError):
    message = "the loan is sufficiently collateralized, you can't seize it"


class SupplyCapExceeded(VaultError):
    message = "the maximum loan value would be exceeded"


class InsufficientPayment(VaultError):
    message = "you sent less than the loan amount"


class ExceedsCirculatingSupply(VaultError):
    message = "amount exceeds the circulating supply"


class InsufficientReserve(VaultError):
    message = "not enough reserve to pay out"


# Oracle unavailability

class NoPriceAvailable(VaultError):
    message = "no price available from the oracle"


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: TRIGGER, LIFECYCLE or SYSTEM
        source_id: Trigger id, keeper name or setup label
        unit_symbol: Vault symbol the transaction belongs to (if any)
        event_type: Operation name (e.g. "ISSUE", "SEIZE", "BOUNCE")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change with complete before/after snapshots.

    old_state doubles as the optimistic-concurrency guard: the ledger rejects
    the change if the unit's current state no longer equals it.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old, new)} for fields that differ."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old) | set(new):
            if old.get(key) != new.get(key):
                changes[key] = (old.get(key), new.get(key))
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: Amount in base units of the asset (positive int).
        unit_symbol: Asset being transferred (reserve asset or pegged token).
        source: Wallet debited.
        dest: Wallet credited.
        contract_id: Identifier of the trigger leg generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int base units, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}->{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """Canonical string for a Decimal: Decimal("1.0") and Decimal("1.00") both give "1"."""
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and Decimal representation.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        return f"[{','.join(_canonicalize(item) for item in value)}]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = (),
) -> str:
    """
    Deterministic content hash of a transaction's intent.

    Based only on moves, state changes, origin and created units, never on
    timestamps. Used by the ledger to refuse executing the same intent twice.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (m.quantity, m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        content_parts.append(f"unit_create:{unit.symbol}|{unit.unit_type}")

    for m in sorted_moves:
        content_parts.append(f"move:{m.quantity}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.unit):
        content_parts.append(
            f"state_change:{sc.unit}|{_canonicalize(sc.old_state)}|{_canonicalize(sc.new_state)}"
        )

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction description before execution - represents INTENT.

    Built by vault operations and keepers, submitted to Ledger.execute().

    Attributes:
        moves: Value transfers (payments in, payouts, issuance, burns)
        state_changes: Vault state snapshots (old_state, new_state)
        origin: Who/what created this transaction and why
        timestamp: Ledger time when it was built
        units_to_create: Units registered atomically with the moves (Define)
        intent_id: Content-addressable hash (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.units_to_create
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if there are no moves, no state changes and no units to create."""
        return not self.moves and not self.state_changes and not self.units_to_create

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state changes.

    State snapshots are deep-copied so later mutation by the caller cannot
    leak into the transaction.

    Example:
        moves = [Move(1000, "GBYTE", "alice", "vault", "t1:payment")]
        pending = build_transaction(ledger, moves)
        ledger.execute(pending)
    """
    if origin is None:
        origin = TransactionOrigin(OriginType.SYSTEM, "setup")

    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """Create an empty PendingTransaction for a contract that has nothing to do."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.LIFECYCLE, "noop"),
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves, state_changes, origin, timestamp, intent_id: from the PendingTransaction
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: Ledger time at execution
        sequence_number: Monotonic sequence within the ledger
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.units_to_create:
            raise ValueError("Transaction must have moves, state_changes, or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        lines = [f"Transaction {self.exec_id} [{self.origin}]"]
        for unit in self.units_to_create:
            lines.append(f"  + unit {unit.symbol} ({unit.unit_type})")
        for move in self.moves:
            lines.append(f"  {move.quantity} {move.unit_symbol}: {move.source} -> {move.dest}")
        for sc in self.state_changes:
            for field_name, (old_val, new_val) in sorted(sc.changed_fields().items()):
                lines.append(f"  {sc.unit}.{field_name}: {old_val!r} -> {new_val!r}")
        return "\n".join(lines)


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a sorted tuple of (key, value) pairs."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state back to a mutable dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of an asset or contract registered in the ledger.

    Attributes:
        symbol: Identifier (e.g. "GBYTE", a pegged asset id, a vault symbol).
        name: Human-readable name.
        unit_type: RESERVE, PEGGED_TOKEN or STABLECOIN_VAULT.
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimals: Number of decimals one whole unit is divided into.
        _frozen_state: Internal frozen state (tuple of key-value pairs).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: int = 0
    max_balance: Optional[int] = None
    decimals: int = 0
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """Return the unit's state as a fresh dict."""
        return _thaw_state(self._frozen_state)

    def format_amount(self, amount: int) -> str:
        """Render a base-unit amount in whole units, e.g. 2000 with 2 decimals -> '20.00'."""
        if self.decimals == 0:
            return str(amount)
        return f"{Decimal(amount).scaleb(-self.decimals):.{self.decimals}f}"


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def reserve_asset(symbol: str = "GBYTE", name: str = "Reserve asset", decimals: int = 9) -> Unit:
    """
    Create the volatile reserve asset that collateralizes loans.

    Balances are integers in base units (1 whole unit = 10**decimals).
    """
    if decimals < 0:
        raise ValueError(f"decimals cannot be negative, got {decimals}")
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_RESERVE,
        decimals=decimals,
    )


def pegged_token(asset_id: str, name: str, decimals: int, issuer: str) -> Unit:
    """
    Create the price-pegged token.

    The unit itself carries no supply cap: issuance goes through the system
    wallet and the vault's circulating_supply is the only supply record.
    """
    return Unit(
        symbol=asset_id,
        name=name,
        unit_type=UNIT_TYPE_PEGGED_TOKEN,
        decimals=decimals,
        _frozen_state=_freeze_state({'issuer': issuer, 'is_transferrable': True}),
    )
