"""
positions.py - Loans: issue, add collateral, repay

Key Formulas:
    principal = floor(collateral * P_eff * 10**d / (R_open * 10**r))
    supply cap: circulating + principal <= max_loan_value_in_underlying

adjust_circulating_supply() is the only function that changes
circulating_supply. Issue, Repay, Mint and Redeem all go through it.

Every check runs before any state is built, so a failing operation raises
a VaultError and produces nothing.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal

from .core import (
    LedgerView,
    NotFound, AssetNotDefined, Expired, BelowMinimum, SupplyCapExceeded,
    NotOwner, AlreadyRepaid, InsufficientPayment, AuctionActive,
    MissingPayment, ExceedsCirculatingSupply,
)
from .fixed_point import floor_mul_div
from .oracle import FeedReading, effective_price
from .triggers import Trigger, TriggerResult, build_result, issue, burn, payout
from .vault import VaultParams, VaultState, Position, load_vault, to_epoch_seconds


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_principal(collateral: int, price: Decimal, params: VaultParams) -> int:
    """Pegged base units lent against `collateral` reserve base units at R_open."""
    return floor_mul_div(
        collateral,
        price * 10 ** params.decimals,
        params.overcollateralization_ratio * 10 ** params.reserve_decimals,
    )


def check_supply_cap(new_supply: int, params: VaultParams) -> None:
    """
    Raises:
        SupplyCapExceeded: If new_supply pegged base units exceed the cap
    """
    if new_supply > params.max_loan_value_in_underlying:
        raise SupplyCapExceeded()


def adjust_circulating_supply(state: VaultState, delta: int) -> VaultState:
    """
    Return a new state with circulating_supply moved by delta.

    Raises:
        ExceedsCirculatingSupply: If the supply would go negative
    """
    new_supply = state.circulating_supply + delta
    if new_supply < 0:
        raise ExceedsCirculatingSupply()
    return replace(state, circulating_supply=new_supply)


def is_past_expiry(params: VaultParams, state: VaultState, now) -> bool:
    return state.expired or to_epoch_seconds(now) >= to_epoch_seconds(params.expiry_date)


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_issue(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    reading: FeedReading,
) -> TriggerResult:
    """
    Open a loan against the attached reserve payment.

    The position is keyed by the trigger id and the principal is issued to
    the sender. Responds with {id, amount}.

    Raises:
        AssetNotDefined, Expired, MissingPayment, NoPriceAvailable,
        BelowMinimum, SupplyCapExceeded
    """
    params, state = load_vault(view, symbol)
    if state.asset is None:
        raise AssetNotDefined()
    if is_past_expiry(params, state, view.current_time):
        raise Expired()

    collateral = trigger.paid(params.reserve_asset)
    if collateral <= 0:
        raise MissingPayment()

    price = effective_price(params, state, reading)
    principal = calculate_principal(collateral, price, params)
    if principal <= 0:
        raise BelowMinimum()
    check_supply_cap(state.circulating_supply + principal, params)

    loan_id = trigger.trigger_id
    new_state = adjust_circulating_supply(state, principal).with_position(
        loan_id, Position(owner=trigger.sender, collateral=collateral, principal=principal)
    )

    return build_result(
        view, symbol, trigger, "ISSUE", params, state, new_state,
        moves=issue(trigger, state.asset, principal, trigger.sender),
        response_vars={'id': loan_id, 'amount': principal},
    )


def compute_add_collateral(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    loan_id: str,
) -> TriggerResult:
    """
    Add the attached reserve payment to a loan's collateral.

    Anyone may top up any loan. Responds with {id, collateral}.

    Raises:
        NotFound: If the loan does not exist or is repaid
        AuctionActive: If the loan is being auctioned
        MissingPayment: If no reserve asset is attached
    """
    params, state = load_vault(view, symbol)
    position = state.get_position(loan_id)
    if position.repaid:
        raise NotFound()
    if position.auction_active:
        raise AuctionActive()
    amount = trigger.paid(params.reserve_asset)
    if amount <= 0:
        raise MissingPayment()

    new_position = replace(position, collateral=position.collateral + amount)
    new_state = state.with_position(loan_id, new_position)

    return build_result(
        view, symbol, trigger, "ADD_COLLATERAL", params, state, new_state,
        moves=[],
        response_vars={'id': loan_id, 'collateral': new_position.collateral},
    )


def compute_repay(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    loan_id: str,
) -> TriggerResult:
    """
    Repay a loan with the attached pegged tokens and release its collateral.

    The principal is burned, tokens tendered above it go back to the
    sender, and the collateral is paid to the owner. Responds with
    {id, collateral}.

    Raises (checked in this order):
        NotFound, NotOwner, AlreadyRepaid, InsufficientPayment, AuctionActive,
        InsufficientReserve
    """
    params, state = load_vault(view, symbol)
    position = state.get_position(loan_id)
    if trigger.sender != position.owner:
        raise NotOwner()
    if position.repaid:
        raise AlreadyRepaid()
    tendered = trigger.paid(state.asset)
    if tendered < position.principal:
        raise InsufficientPayment()
    if position.auction_active:
        raise AuctionActive()

    new_state = adjust_circulating_supply(state, -position.principal).with_position(
        loan_id, replace(position, repaid=True)
    )

    moves = burn(trigger, params, state.asset, position.principal)
    moves += payout(trigger, params, state.asset, tendered - position.principal, trigger.sender, "change")
    moves += payout(trigger, params, params.reserve_asset, position.collateral, position.owner, "collateral")

    return build_result(
        view, symbol, trigger, "REPAY", params, state, new_state,
        moves=moves,
        response_vars={'id': loan_id, 'collateral': position.collateral},
    )
