"""
router.py - Route each trigger to exactly one vault operation.

Trigger surface:

    tag              fields   payment          operation
    define           -        -                Define
    (none)           -        reserve asset    Issue
    add_collateral   id       reserve asset    AddCollateral
    repay            id       pegged token     Repay
    expire           -        -                RecordExpiry
    seize            id       reserve asset    Seize
    end_auction      id       -                EndAuction
    mint             -        reserve asset    Mint
    (none)           -        pegged token     Redeem

process_trigger() reads the vault and the oracle once, runs the operation
and turns any VaultError into a bounce. transact() is the event-type entry
point used by keepers and scripts.
"""

from __future__ import annotations
from typing import Optional

from .core import (
    LedgerView, VaultError,
    InvalidTrigger, UnsupportedAsset, MissingPayment,
)
from .auction import compute_seize, compute_end_auction
from .exchange import compute_mint, compute_redeem
from .expiry import compute_record_expiry
from .oracle import FeedReading, PricingSource, read_feeds
from .positions import compute_issue, compute_add_collateral, compute_repay
from .registry import compute_define
from .triggers import Trigger, TriggerResult, bounce_result
from .vault import load_vault


TAG_DEFINE = 'define'
TAG_ADD_COLLATERAL = 'add_collateral'
TAG_REPAY = 'repay'
TAG_EXPIRE = 'expire'
TAG_SEIZE = 'seize'
TAG_END_AUCTION = 'end_auction'
TAG_MINT = 'mint'

# Tags that need an 'id' field naming the loan
ID_TAGS = (TAG_ADD_COLLATERAL, TAG_REPAY, TAG_SEIZE, TAG_END_AUCTION)

# Operations that take the pegged token as payment
PEGGED_EVENTS = ('REPAY', 'REDEEM')


def classify(trigger: Trigger, reserve_asset: str, asset: Optional[str]) -> str:
    """
    Return the event type for a trigger.

    Raises:
        UnsupportedAsset: If a payment is in an asset the vault does not handle,
            or pegged tokens come with an operation that does not take them
        InvalidTrigger: If the tags and payments match no operation
    """
    for paid_asset in trigger.payments:
        if paid_asset != reserve_asset and paid_asset != asset:
            raise UnsupportedAsset(f"unsupported asset {paid_asset}")

    for tag in ID_TAGS:
        if trigger.has_tag(tag) and not trigger.data.get('id'):
            raise InvalidTrigger(f"{tag} needs an id")

    event_type = _event_type(trigger, reserve_asset, asset)
    if trigger.paid(asset) > 0 and event_type not in PEGGED_EVENTS:
        raise UnsupportedAsset(f"unsupported asset {asset}")
    return event_type


def _event_type(trigger: Trigger, reserve_asset: str, asset: Optional[str]) -> str:
    if trigger.has_tag(TAG_DEFINE):
        return 'DEFINE'
    if trigger.has_tag(TAG_ADD_COLLATERAL):
        return 'ADD_COLLATERAL'
    if trigger.has_tag(TAG_REPAY):
        return 'REPAY'
    if trigger.has_tag(TAG_EXPIRE):
        return 'RECORD_EXPIRY'
    if trigger.has_tag(TAG_SEIZE):
        return 'SEIZE'
    if trigger.has_tag(TAG_END_AUCTION):
        return 'END_AUCTION'
    if trigger.has_tag(TAG_MINT):
        return 'MINT'
    if trigger.paid(asset) > 0:
        return 'REDEEM'
    if trigger.paid(reserve_asset) > 0:
        return 'ISSUE'
    if not trigger.payments:
        raise MissingPayment()
    raise InvalidTrigger()


def transact(
    view: LedgerView,
    symbol: str,
    event_type: str,
    trigger: Trigger,
    reading: Optional[FeedReading] = None,
) -> TriggerResult:
    """
    Run one vault operation.

    Args:
        view: Read-only ledger access
        symbol: Vault symbol
        event_type: DEFINE, ISSUE, ADD_COLLATERAL, REPAY, RECORD_EXPIRY,
            SEIZE, END_AUCTION, MINT or REDEEM
        trigger: The message being processed
        reading: Oracle reading taken at operation start

    Raises:
        VaultError: If the operation rejects the trigger
        ValueError: If event_type is unknown
    """
    reading = reading or FeedReading()
    loan_id = trigger.data.get('id')

    if event_type == 'DEFINE':
        return compute_define(view, symbol, trigger)
    elif event_type == 'ISSUE':
        return compute_issue(view, symbol, trigger, reading)
    elif event_type == 'ADD_COLLATERAL':
        return compute_add_collateral(view, symbol, trigger, loan_id)
    elif event_type == 'REPAY':
        return compute_repay(view, symbol, trigger, loan_id)
    elif event_type == 'RECORD_EXPIRY':
        return compute_record_expiry(view, symbol, trigger, reading)
    elif event_type == 'SEIZE':
        return compute_seize(view, symbol, trigger, loan_id, reading)
    elif event_type == 'END_AUCTION':
        return compute_end_auction(view, symbol, trigger, loan_id)
    elif event_type == 'MINT':
        return compute_mint(view, symbol, trigger, reading)
    elif event_type == 'REDEEM':
        return compute_redeem(view, symbol, trigger, reading)
    else:
        raise ValueError(f"Unknown event type '{event_type}' for vault {symbol}")


def process_trigger(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    pricing_source: Optional[PricingSource] = None,
) -> TriggerResult:
    """
    Process one trigger to completion.

    Never raises for a rejected trigger: the result is a bounce that
    refunds the payments and leaves the vault state untouched.

    Example:
        result = process_trigger(ledger, "USD_VAULT", Trigger("t1", "alice", {"GBYTE": 10**9}), oracle)
        ledger.execute(result.pending)
    """
    params, state = load_vault(view, symbol)
    try:
        event_type = classify(trigger, params.reserve_asset, state.asset)
        reading = read_feeds(pricing_source, params, view.current_time)
        return transact(view, symbol, event_type, trigger, reading)
    except VaultError as e:
        return bounce_result(view, symbol, trigger, params, str(e))
