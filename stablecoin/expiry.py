"""
expiry.py - Freeze the exchange rate at maturity.

Once recorded, expiry_exchange_rate replaces the moving average for every
later solvency and auction decision, and mint/redeem are closed.
"""

from __future__ import annotations
from dataclasses import replace

from .core import LedgerView, TooEarly, AlreadyRecorded
from .oracle import FeedReading, effective_price
from .triggers import Trigger, TriggerResult, build_result
from .vault import VaultParams, VaultState, load_vault, to_epoch_seconds


def is_expiry_due(params: VaultParams, state: VaultState, now) -> bool:
    """True once the expiry date has passed and no rate is recorded yet."""
    return (
        state.expiry_exchange_rate is None
        and to_epoch_seconds(now) >= to_epoch_seconds(params.expiry_date)
    )


def compute_record_expiry(
    view: LedgerView,
    symbol: str,
    trigger: Trigger,
    reading: FeedReading,
) -> TriggerResult:
    """
    Record the moving-average price as the expiry exchange rate.

    Responds with {expiry_exchange_rate}.

    Raises:
        TooEarly: Before the expiry date
        AlreadyRecorded: If a rate is already recorded
        NoPriceAvailable: If the moving-average feed has no usable value
    """
    params, state = load_vault(view, symbol)
    if to_epoch_seconds(view.current_time) < to_epoch_seconds(params.expiry_date):
        raise TooEarly()
    if state.expiry_exchange_rate is not None:
        raise AlreadyRecorded()

    rate = effective_price(params, state, reading)
    new_state = replace(state, expiry_exchange_rate=rate)
    return build_result(
        view, symbol, trigger, "RECORD_EXPIRY", params, state, new_state,
        moves=[],
        response_vars={'expiry_exchange_rate': rate},
    )
