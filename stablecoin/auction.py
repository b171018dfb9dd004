"""
auction.py - Liquidation auction for undercollateralized loans

A loan whose collateral ratio at the effective price falls below the
liquidation ratio can be seized. Seizing opens an ascending auction for the
loan; the winning bid becomes the loan's new collateral and the winner its
new owner.

Per-loan states:

    Healthy --seize (bid >= opening minimum)--> AuctionOpen
    AuctionOpen --seize (bid >= min_outbid, before end)--> AuctionOpen
    AuctionOpen --end_auction (at/after end)--> Healthy (new owner)

Key Formulas:
    opening minimum = ceil(peg_to_reserve(principal) * R_restore) - collateral
    outbid minimum  = ceil(winner_bid * (1 + min_bid_increment))
    outbid refund   = winner_bid - processing_fee, paid to the displaced winner

The deadline is fixed when the auction opens and is never extended.
Repay is blocked while an auction is open.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal

from .core import (
    LedgerView,
    AlreadyRepaid, SufficientlyCollateralized, BidTooLow, AuctionExpired,
    StillRunning, MissingPayment,
)
from .fixed_point import ceil_mul_div, is_ratio_at_least, min_outbid
from .oracle import FeedReading, effective_price
from .triggers import Trigger, TriggerResult, build_result, payout
from .vault import VaultParams, Position, load_vault, to_epoch_seconds


MSG_OPENING_BID_TOO_LOW = "you sent less than the missing collateral"


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def is_seizable(position: Position, price: Decimal, params: VaultParams) -> bool:
    """True if the loan's collateral ratio is below the liquidation ratio."""
    return not is_ratio_at_least(
        position.collateral, position.principal, price,
        params.decimals, params.reserve_decimals, params.liquidation_ratio,
    )


def calculate_opening_bid(position: Position, price: Decimal, params: VaultParams) -> int:
    """Reserve that must be added to bring the loan back to the restore ratio."""
    required = ceil_mul_div(
        position.principal * 10 ** params.reserve_decimals,
        params.opening_bid_ratio,
        price * 10 ** params.decimals,
    )
    return required - position.collateral


def calculate_min_outbid(position: Position, params: VaultParams) -> int:
    return min_outbid(position.winner_bid, params.min_bid_increment)


def outbid_message(params: VaultParams) -> str:
    percent = (params.min_bid_increment * 100).normalize()
    return f"your bid must be at least {percent:f}% better than the current winner"


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_seize(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    loan_id: str,
    reading: FeedReading,
) -> TriggerResult:
    """
    Bid for an undercollateralized loan with the attached reserve payment.

    Opens the auction if none is running, otherwise replaces the current
    winner and refunds them their bid minus the processing fee. The bid
    stays in the vault wallet as escrow. Responds with {id, new_bid}.

    Raises:
        NotFound, AlreadyRepaid, MissingPayment, NoPriceAvailable,
        SufficientlyCollateralized, BidTooLow, AuctionExpired, InsufficientReserve
    """
    params, state = load_vault(view, symbol)
    position = state.get_position(loan_id)
    if position.repaid:
        raise AlreadyRepaid()
    bid = trigger.paid(params.reserve_asset)
    if bid <= 0:
        raise MissingPayment()

    price = effective_price(params, state, reading)
    if not is_seizable(position, price, params):
        raise SufficientlyCollateralized()

    now = to_epoch_seconds(view.current_time)
    moves = []
    if not position.auction_active:
        if bid < calculate_opening_bid(position, price, params):
            raise BidTooLow(MSG_OPENING_BID_TOO_LOW)
        new_position = replace(
            position,
            winner=trigger.sender,
            winner_bid=bid,
            auction_end_ts=now + params.auction_period,
        )
        event_type = "SEIZE"
    else:
        if now >= position.auction_end_ts:
            raise AuctionExpired()
        if bid < calculate_min_outbid(position, params):
            raise BidTooLow(outbid_message(params))
        moves += payout(
            trigger, params, params.reserve_asset,
            position.winner_bid - params.processing_fee,
            position.winner, "outbid_refund",
        )
        new_position = replace(position, winner=trigger.sender, winner_bid=bid)
        event_type = "OUTBID"

    new_state = state.with_position(loan_id, new_position)
    return build_result(
        view, symbol, trigger, event_type, params, state, new_state,
        moves=moves,
        response_vars={'id': loan_id, 'new_bid': bid},
    )


def compute_end_auction(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    loan_id: str,
) -> TriggerResult:
    """
    Settle a finished auction. Anyone may call it.

    The winner becomes the owner and the winning bid becomes the
    collateral. Responds with {id, new_owner, new_collateral}.

    Raises:
        NotFound: If the loan does not exist
        StillRunning: If no auction is open or its deadline has not passed
    """
    params, state = load_vault(view, symbol)
    position = state.get_position(loan_id)
    if not position.auction_active:
        raise StillRunning("no auction is under way")
    if to_epoch_seconds(view.current_time) < position.auction_end_ts:
        raise StillRunning()

    new_position = replace(
        position,
        owner=position.winner,
        collateral=position.winner_bid,
        winner=None,
        winner_bid=None,
        auction_end_ts=None,
    )
    new_state = state.with_position(loan_id, new_position)
    return build_result(
        view, symbol, trigger, "END_AUCTION", params, state, new_state,
        moves=[],
        response_vars={
            'id': loan_id,
            'new_owner': new_position.owner,
            'new_collateral': new_position.collateral,
        },
    )
