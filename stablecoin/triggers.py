"""
triggers.py - Messages into the vault and responses out of it

A Trigger is one ordered message to the vault: who sent it, what it paid
and which data tags it carries. Every operation turns a trigger into a
TriggerResult: one PendingTransaction (payments in, payouts, state change)
and the Response observers see.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .core import (
    LedgerView, Move, PendingTransaction, TransactionOrigin, OriginType,
    UnitStateChange, InsufficientReserve, SYSTEM_WALLET,
    build_transaction,
)
from .vault import VaultParams, VaultState, to_state_dict


@dataclass(frozen=True, slots=True)
class Trigger:
    """
    One message to the vault.

    Attributes:
        trigger_id: Unique id assigned by the ledger layer. Positions and
            the pegged asset are named after the trigger that created them.
        sender: Wallet that sent the trigger and receives payouts/refunds.
        payments: asset -> amount in base units sent to the vault.
        data: Action tags and fields, e.g. {"repay": 1, "id": "t5"}.
    """
    trigger_id: str
    sender: str
    payments: Mapping[str, int] = field(default_factory=dict)
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.trigger_id or not self.trigger_id.strip():
            raise ValueError("trigger_id cannot be empty")
        if not self.sender or not self.sender.strip():
            raise ValueError("sender cannot be empty")
        for asset, amount in self.payments.items():
            if isinstance(amount, bool) or not isinstance(amount, int):
                raise ValueError(f"payment of {asset} must be int base units, got {type(amount)}")
            if amount <= 0:
                raise ValueError(f"payment of {asset} must be positive, got {amount}")

    def paid(self, asset: Optional[str]) -> int:
        """Amount of `asset` attached to this trigger (0 if none)."""
        if asset is None:
            return 0
        return self.payments.get(asset, 0)

    def has_tag(self, tag: str) -> bool:
        return bool(self.data.get(tag))


@dataclass(frozen=True, slots=True)
class Response:
    """
    What observers see for a trigger.

    A bounced response carries the error message and no response_vars.
    """
    bounced: bool = False
    error: Optional[str] = None
    response_vars: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def bounce(cls, error: str) -> Response:
        return cls(bounced=True, error=error)


@dataclass(frozen=True, slots=True)
class TriggerResult:
    """The transaction a trigger produces and the response it answers with."""
    trigger: Trigger
    pending: PendingTransaction
    response: Response


# ============================================================================
# MOVE HELPERS
# ============================================================================

def payment_moves(trigger: Trigger, params: VaultParams) -> List[Move]:
    """Moves that bring every attached payment into the vault wallet."""
    return [
        Move(amount, asset, trigger.sender, params.vault_wallet, f"{trigger.trigger_id}:payment")
        for asset, amount in sorted(trigger.payments.items())
    ]


def payout(trigger: Trigger, params: VaultParams, asset: str, amount: int, dest: str, leg: str) -> List[Move]:
    """Pay `amount` of `asset` from the vault to `dest`. Nothing for a zero amount."""
    if amount <= 0:
        return []
    return [Move(amount, asset, params.vault_wallet, dest, f"{trigger.trigger_id}:{leg}")]


def issue(trigger: Trigger, asset: str, amount: int, dest: str) -> List[Move]:
    """Create pegged tokens out of the system wallet."""
    if amount <= 0:
        return []
    return [Move(amount, asset, SYSTEM_WALLET, dest, f"{trigger.trigger_id}:issue")]


def burn(trigger: Trigger, params: VaultParams, asset: str, amount: int) -> List[Move]:
    """Destroy pegged tokens held by the vault."""
    if amount <= 0:
        return []
    return [Move(amount, asset, params.vault_wallet, SYSTEM_WALLET, f"{trigger.trigger_id}:burn")]


def check_vault_can_pay(view: LedgerView, trigger: Trigger, params: VaultParams, moves: List[Move]) -> None:
    """
    Raises:
        InsufficientReserve: If the vault pays out more of an asset than it
            holds plus what the trigger brings in
    """
    outflows: Dict[str, int] = {}
    for move in moves:
        if move.source == params.vault_wallet:
            outflows[move.unit_symbol] = outflows.get(move.unit_symbol, 0) + move.quantity
    for asset, amount in sorted(outflows.items()):
        if amount > view.get_balance(params.vault_wallet, asset) + trigger.paid(asset):
            raise InsufficientReserve()


def trigger_origin(trigger: Trigger, symbol: str, event_type: str) -> TransactionOrigin:
    return TransactionOrigin(OriginType.TRIGGER, trigger.trigger_id, symbol, event_type)


def build_result(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    event_type: str,
    params: VaultParams,
    old_state: VaultState,
    new_state: VaultState,
    moves: List[Move],
    response_vars: Mapping[str, Any],
    units_to_create: tuple = (),
) -> TriggerResult:
    """
    Assemble the single transaction for a successful operation.

    Payments in come first, followed by the operation's own moves, and one
    state change from old_state to new_state.

    Raises:
        InsufficientReserve: If the vault wallet cannot cover its payouts
    """
    check_vault_can_pay(view, trigger, params, moves)
    state_changes = [UnitStateChange(
        unit=symbol,
        old_state=to_state_dict(params, old_state),
        new_state=to_state_dict(params, new_state),
    )]
    pending = build_transaction(
        view,
        payment_moves(trigger, params) + moves,
        state_changes,
        origin=trigger_origin(trigger, symbol, event_type),
        units_to_create=units_to_create,
    )
    return TriggerResult(trigger, pending, Response(response_vars=dict(response_vars)))


def bounce_result(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    params: VaultParams,
    error: str,
) -> TriggerResult:
    """
    Reject a trigger: no state change, payments returned.

    The reserve asset comes back minus the processing fee. Every other
    asset comes back in full.
    """
    moves = payment_moves(trigger, params)
    for asset, amount in sorted(trigger.payments.items()):
        refund = amount - params.processing_fee if asset == params.reserve_asset else amount
        moves += payout(trigger, params, asset, refund, trigger.sender, "refund")
    pending = build_transaction(
        view, moves, origin=trigger_origin(trigger, symbol, "BOUNCE"),
    )
    return TriggerResult(trigger, pending, Response.bounce(error))


__all__ = [
    'Trigger', 'Response', 'TriggerResult',
    'payment_moves', 'payout', 'issue', 'burn',
    'check_vault_can_pay', 'trigger_origin', 'build_result', 'bounce_result',
]
