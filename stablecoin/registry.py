"""
registry.py - One-time definition of the pegged asset.

The pegged token is named after the trigger that defines it and is created
atomically with the state change that records it. The unit carries no
supply cap; supply is tracked by the vault's circulating_supply.
"""

from __future__ import annotations
from dataclasses import replace

from .core import LedgerView, AlreadyDefined, pegged_token
from .triggers import Trigger, TriggerResult, build_result
from .vault import load_vault


def compute_define(view: LedgerView, symbol: str, trigger: Trigger) -> TriggerResult:
    """
    Define the pegged asset.

    Raises:
        AlreadyDefined: If the vault already has an asset
    """
    params, state = load_vault(view, symbol)
    if state.asset is not None:
        raise AlreadyDefined()

    asset_id = trigger.trigger_id
    vault_name = view.get_unit(symbol).name
    token = pegged_token(
        asset_id,
        name=f"{vault_name} token",
        decimals=params.decimals,
        issuer=params.vault_wallet,
    )

    new_state = replace(state, asset=asset_id)
    return build_result(
        view, symbol, trigger, "DEFINE", params, state, new_state,
        moves=[],
        response_vars={'asset': asset_id},
        units_to_create=(token,),
    )
