"""
exchange.py - Mint and redeem at the spot price

Direct exchange between the reserve asset and the pegged token, outside of
any loan:

    mint:   out = floor((amount - fee) * P_spot * 10**d / 10**r)
    redeem: out = floor(amount * 10**r / (P_spot * 10**d))

Both are closed once the expiry rate is recorded. A mint that would push
the supply over the cap is rejected as a whole.
"""

from __future__ import annotations
from decimal import Decimal

from .core import (
    LedgerView,
    AssetNotDefined, Expired, BelowMinimum, MissingPayment,
    ExceedsCirculatingSupply, InsufficientReserve,
)
from .fixed_point import floor_div, reserve_to_peg, peg_to_reserve
from .oracle import FeedReading, spot_price
from .positions import adjust_circulating_supply, check_supply_cap
from .triggers import Trigger, TriggerResult, build_result, issue, burn, payout
from .vault import VaultParams, load_vault


def calculate_mint_output(amount: int, price: Decimal, params: VaultParams) -> int:
    """Pegged base units bought with `amount` reserve base units, fee deducted."""
    net = amount - params.processing_fee
    if net <= 0:
        return 0
    return floor_div(reserve_to_peg(net, price, params.decimals, params.reserve_decimals))


def calculate_redeem_output(amount: int, price: Decimal, params: VaultParams) -> int:
    """Reserve base units paid for `amount` pegged base units."""
    return floor_div(peg_to_reserve(amount, price, params.decimals, params.reserve_decimals))


def compute_mint(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    reading: FeedReading,
) -> TriggerResult:
    """
    Exchange the attached reserve payment for newly issued pegged tokens.

    Responds with {amount}.

    Raises:
        AssetNotDefined, Expired, MissingPayment, NoPriceAvailable,
        BelowMinimum, SupplyCapExceeded
    """
    params, state = load_vault(view, symbol)
    if state.asset is None:
        raise AssetNotDefined()
    if state.expired:
        raise Expired()
    amount = trigger.paid(params.reserve_asset)
    if amount <= 0:
        raise MissingPayment()

    price = spot_price(params, reading)
    out = calculate_mint_output(amount, price, params)
    if out <= 0:
        raise BelowMinimum()
    check_supply_cap(state.circulating_supply + out, params)

    new_state = adjust_circulating_supply(state, out)
    return build_result(
        view, symbol, trigger, "MINT", params, state, new_state,
        moves=issue(trigger, state.asset, out, trigger.sender),
        response_vars={'amount': out},
    )


def compute_redeem(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    reading: FeedReading,
) -> TriggerResult:
    """
    Exchange the attached pegged tokens for reserve asset.

    The tokens are burned. Responds with {amount} in reserve base units.

    Raises:
        Expired, ExceedsCirculatingSupply, NoPriceAvailable, BelowMinimum,
        InsufficientReserve
    """
    params, state = load_vault(view, symbol)
    if state.expired:
        raise Expired()
    amount = trigger.paid(state.asset)
    if amount <= 0:
        raise MissingPayment()
    if amount > state.circulating_supply:
        raise ExceedsCirculatingSupply()

    price = spot_price(params, reading)
    out = calculate_redeem_output(amount, price, params)
    if out <= 0:
        raise BelowMinimum()
    available = (
        view.get_balance(params.vault_wallet, params.reserve_asset)
        + trigger.paid(params.reserve_asset)
    )
    if out > available:
        raise InsufficientReserve()

    new_state = adjust_circulating_supply(state, -amount)
    moves = burn(trigger, params, state.asset, amount)
    moves += payout(trigger, params, params.reserve_asset, out, trigger.sender, "redeem")
    return build_result(
        view, symbol, trigger, "REDEEM", params, state, new_state,
        moves=moves,
        response_vars={'amount': out},
    )
