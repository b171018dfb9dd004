"""
vault.py - Stablecoin Vault Parameters and State

This module holds the typed model of a vault and its serialization to the
ledger's unit state.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - VaultParams: Immutable parameters (set at deployment, never change)
   - Position: One loan, keyed by the id of the trigger that opened it
   - VaultState: Asset id, circulating supply, frozen rate and positions

2. ADAPTER FUNCTIONS:
   - load_vault(): The ONLY place that reads vault state from a LedgerView
   - to_state_dict(): Inverse of load_vault, used to build state changes
   - state_vars(): The flat key-value view external tooling reads

3. FACTORIES:
   - create_vault(): Validated vault Unit
   - params_from_mapping(): Parameters from a deployment-style mapping

Persisted keys (absence of a key means "not set"):
    asset, circulating_supply, expiry_exchange_rate,
    <id>_owner, <id>_collateral, <id>_amount, <id>_repaid,
    <id>_winner, <id>_winner_bid, <id>_auction_end_ts

Parameters live under the 'params' key and are not part of state_vars().
"""

from __future__ import annotations
from calendar import timegm
from dataclasses import dataclass, field, replace
from datetime import datetime, date
from decimal import Decimal
from typing import Dict, Any, Mapping, Optional, Tuple

from .core import (
    LedgerView, Unit, UNIT_TYPE_STABLECOIN_VAULT,
    NotFound,
    _freeze_state,
)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultParams:
    """
    Immutable vault parameters, set at deployment.

    Ratios and increments are Decimal, amounts are int base units, the
    auction period is in seconds.
    """
    oracle: str
    feed_name: str
    ma_feed_name: str
    overcollateralization_ratio: Decimal   # required at issuance, e.g. 1.5
    liquidation_ratio: Decimal             # seizable below this, e.g. 1.3
    decimals: int                          # decimals of the pegged token
    auction_period: int                    # seconds
    expiry_date: datetime
    max_loan_value_in_underlying: int      # pegged base units
    reserve_asset: str = "GBYTE"
    reserve_decimals: int = 9
    processing_fee: int = 1000             # reserve base units
    min_bid_increment: Decimal = Decimal("0.01")
    vault_wallet: str = "vault"
    # Collateral ratio the opening bid must restore. None means liquidation_ratio.
    restore_ratio: Optional[Decimal] = None

    def __post_init__(self):
        """Convert float or str values to Decimal to ensure type consistency."""
        for name in ('overcollateralization_ratio', 'liquidation_ratio', 'min_bid_increment'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(str(value)))
        if self.restore_ratio is not None and not isinstance(self.restore_ratio, Decimal):
            object.__setattr__(self, 'restore_ratio', Decimal(str(self.restore_ratio)))

    @property
    def opening_bid_ratio(self) -> Decimal:
        return self.restore_ratio if self.restore_ratio is not None else self.liquidation_ratio


@dataclass(frozen=True, slots=True)
class Position:
    """
    One loan.

    principal is fixed at issuance. The auction fields are all set while an
    auction is open and all None otherwise.
    """
    owner: str
    collateral: int
    principal: int
    repaid: bool = False
    winner: Optional[str] = None
    winner_bid: Optional[int] = None
    auction_end_ts: Optional[int] = None

    @property
    def auction_active(self) -> bool:
        return self.auction_end_ts is not None


@dataclass(frozen=True, slots=True)
class VaultState:
    """Snapshot of everything a vault operation may change."""
    asset: Optional[str] = None
    circulating_supply: int = 0
    expiry_exchange_rate: Optional[Decimal] = None
    positions: Mapping[str, Position] = field(default_factory=dict)

    @property
    def expired(self) -> bool:
        return self.expiry_exchange_rate is not None

    def get_position(self, position_id: Optional[str]) -> Position:
        """
        Raises:
            NotFound: If there is no position with this id
        """
        position = self.positions.get(position_id) if position_id else None
        if position is None:
            raise NotFound()
        return position

    def with_position(self, position_id: str, position: Position) -> VaultState:
        """Return a new state with one position added or replaced."""
        positions = dict(self.positions)
        positions[position_id] = position
        return replace(self, positions=positions)


# ============================================================================
# TIME HELPERS
# ============================================================================

def to_epoch_seconds(ts: datetime) -> int:
    """Epoch seconds of a datetime. Naive datetimes are taken as UTC."""
    if ts.tzinfo is None:
        return timegm(ts.timetuple())
    return int(ts.timestamp())


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def _params_to_dict(params: VaultParams) -> Dict[str, Any]:
    return {
        'oracle': params.oracle,
        'feed_name': params.feed_name,
        'ma_feed_name': params.ma_feed_name,
        'overcollateralization_ratio': params.overcollateralization_ratio,
        'liquidation_ratio': params.liquidation_ratio,
        'decimals': params.decimals,
        'auction_period': params.auction_period,
        'expiry_date': params.expiry_date,
        'max_loan_value_in_underlying': params.max_loan_value_in_underlying,
        'reserve_asset': params.reserve_asset,
        'reserve_decimals': params.reserve_decimals,
        'processing_fee': params.processing_fee,
        'min_bid_increment': params.min_bid_increment,
        'vault_wallet': params.vault_wallet,
        'restore_ratio': params.restore_ratio,
    }


def load_vault(view: LedgerView, symbol: str) -> Tuple[VaultParams, VaultState]:
    """
    Load a vault from ledger state as typed frozen dataclasses.

    This is the ONLY function that reads vault state from a LedgerView.
    Operations take the returned dataclasses as explicit parameters.

    Example:
        params, state = load_vault(view, "USD_VAULT")
        position = state.get_position(loan_id)
    """
    raw = view.get_unit_state(symbol)
    return VaultParams(**raw['params']), state_from_vars(raw)


def state_from_vars(raw: Mapping[str, Any]) -> VaultState:
    """Parse the flat persisted keys into a VaultState."""
    positions = {}
    for key in raw:
        if not key.endswith('_owner'):
            continue
        position_id = key[:-len('_owner')]
        winner_bid = raw.get(f'{position_id}_winner_bid')
        auction_end_ts = raw.get(f'{position_id}_auction_end_ts')
        positions[position_id] = Position(
            owner=raw[key],
            collateral=int(raw.get(f'{position_id}_collateral', 0)),
            principal=int(raw.get(f'{position_id}_amount', 0)),
            repaid=bool(raw.get(f'{position_id}_repaid')),
            winner=raw.get(f'{position_id}_winner'),
            winner_bid=int(winner_bid) if winner_bid is not None else None,
            auction_end_ts=int(auction_end_ts) if auction_end_ts is not None else None,
        )

    rate = raw.get('expiry_exchange_rate')
    return VaultState(
        asset=raw.get('asset'),
        circulating_supply=int(raw.get('circulating_supply', 0)),
        expiry_exchange_rate=Decimal(str(rate)) if rate is not None else None,
        positions=positions,
    )


def to_state_dict(params: VaultParams, state: VaultState) -> Dict[str, Any]:
    """
    Convert typed dataclasses back to the unit state dict.

    Inverse of load_vault(). Unset fields produce no key.
    """
    result: Dict[str, Any] = {
        'params': _params_to_dict(params),
        'circulating_supply': state.circulating_supply,
    }
    if state.asset is not None:
        result['asset'] = state.asset
    if state.expiry_exchange_rate is not None:
        result['expiry_exchange_rate'] = state.expiry_exchange_rate

    for position_id in sorted(state.positions):
        position = state.positions[position_id]
        result[f'{position_id}_owner'] = position.owner
        result[f'{position_id}_collateral'] = position.collateral
        result[f'{position_id}_amount'] = position.principal
        if position.repaid:
            result[f'{position_id}_repaid'] = 1
        if position.winner is not None:
            result[f'{position_id}_winner'] = position.winner
        if position.winner_bid is not None:
            result[f'{position_id}_winner_bid'] = position.winner_bid
        if position.auction_end_ts is not None:
            result[f'{position_id}_auction_end_ts'] = position.auction_end_ts
    return result


def state_vars(view: LedgerView, symbol: str) -> Dict[str, Any]:
    """The externally visible key-value state of a vault."""
    raw = view.get_unit_state(symbol)
    return {key: value for key, value in sorted(raw.items()) if key != 'params'}


# ============================================================================
# FACTORIES
# ============================================================================

def validate_params(params: VaultParams) -> None:
    """
    Raises:
        ValueError: If any parameter is out of range
    """
    for name in ('oracle', 'feed_name', 'ma_feed_name', 'reserve_asset', 'vault_wallet'):
        value = getattr(params, name)
        if not value or not str(value).strip():
            raise ValueError(f"{name} cannot be empty")
    if params.feed_name == params.ma_feed_name:
        raise ValueError("feed_name and ma_feed_name must be different")
    if params.overcollateralization_ratio <= 0:
        raise ValueError(
            f"overcollateralization_ratio must be positive, got {params.overcollateralization_ratio}"
        )
    if params.liquidation_ratio <= 0:
        raise ValueError(f"liquidation_ratio must be positive, got {params.liquidation_ratio}")
    if params.liquidation_ratio > params.overcollateralization_ratio:
        raise ValueError(
            f"liquidation_ratio ({params.liquidation_ratio}) cannot exceed "
            f"overcollateralization_ratio ({params.overcollateralization_ratio})"
        )
    if params.restore_ratio is not None and params.restore_ratio < params.liquidation_ratio:
        raise ValueError(
            f"restore_ratio ({params.restore_ratio}) cannot be below "
            f"liquidation_ratio ({params.liquidation_ratio})"
        )
    if params.decimals < 0:
        raise ValueError(f"decimals cannot be negative, got {params.decimals}")
    if params.reserve_decimals < 0:
        raise ValueError(f"reserve_decimals cannot be negative, got {params.reserve_decimals}")
    if params.auction_period <= 0:
        raise ValueError(f"auction_period must be positive, got {params.auction_period}")
    if params.max_loan_value_in_underlying <= 0:
        raise ValueError(
            f"max_loan_value_in_underlying must be positive, got {params.max_loan_value_in_underlying}"
        )
    if params.processing_fee < 0:
        raise ValueError(f"processing_fee cannot be negative, got {params.processing_fee}")
    if params.min_bid_increment < 0:
        raise ValueError(f"min_bid_increment cannot be negative, got {params.min_bid_increment}")
    if not isinstance(params.expiry_date, datetime):
        raise ValueError(f"expiry_date must be a datetime, got {type(params.expiry_date)}")


def create_vault(symbol: str, name: str, params: VaultParams) -> Unit:
    """
    Create a stablecoin vault unit.

    The vault unit holds no balances of its own. Its state carries the
    parameters and the persisted variables; reserve and pegged tokens sit
    in params.vault_wallet.

    Raises:
        ValueError: If symbol/name are empty or parameters are invalid

    Example:
        params = VaultParams(
            oracle="oracle", feed_name="GBYTE_USD", ma_feed_name="GBYTE_USD_MA",
            overcollateralization_ratio=Decimal("1.5"), liquidation_ratio=Decimal("1.3"),
            decimals=2, auction_period=3600, expiry_date=datetime(2025, 6, 1),
            max_loan_value_in_underlying=10_000_000_000,
        )
        ledger.register_unit(create_vault("USD_VAULT", "USD stablecoin", params))
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if not name or not name.strip():
        raise ValueError("name cannot be empty")
    validate_params(params)

    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_STABLECOIN_VAULT,
        _frozen_state=_freeze_state(to_state_dict(params, VaultState())),
    )


def _parse_expiry(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.strptime(value, "%Y-%m-%d")
        except ValueError:
            return datetime.fromisoformat(value)
    raise ValueError(f"expiry_date must be a date string or datetime, got {value!r}")


def params_from_mapping(mapping: Mapping[str, Any]) -> VaultParams:
    """
    Build VaultParams from a deployment-style mapping.

    Numbers may be given as int, str or float (converted via str), and
    expiry_date as 'YYYY-MM-DD', an ISO timestamp or a datetime.

    Raises:
        ValueError: If a required key is missing or a value is invalid

    Example:
        params = params_from_mapping({
            'oracle': 'oracle', 'feed_name': 'GBYTE_USD', 'ma_feed_name': 'GBYTE_USD_MA',
            'overcollateralization_ratio': 1.5, 'liquidation_ratio': 1.3,
            'decimals': 2, 'auction_period': 3600, 'expiry_date': '2025-06-01',
            'max_loan_value_in_underlying': 10000000,
        })
    """
    required = (
        'oracle', 'feed_name', 'ma_feed_name', 'overcollateralization_ratio',
        'liquidation_ratio', 'decimals', 'auction_period', 'expiry_date',
        'max_loan_value_in_underlying',
    )
    missing = [key for key in required if key not in mapping]
    if missing:
        raise ValueError(f"missing vault parameters: {', '.join(missing)}")
    unknown = set(mapping) - set(VaultParams.__dataclass_fields__)
    if unknown:
        raise ValueError(f"unknown vault parameters: {', '.join(sorted(unknown))}")

    kwargs = dict(mapping)
    kwargs['expiry_date'] = _parse_expiry(mapping['expiry_date'])
    for name in ('decimals', 'auction_period', 'max_loan_value_in_underlying',
                 'reserve_decimals', 'processing_fee'):
        if name in kwargs:
            kwargs[name] = int(kwargs[name])
    for name in ('overcollateralization_ratio', 'liquidation_ratio',
                 'min_bid_increment', 'restore_ratio'):
        if kwargs.get(name) is not None:
            kwargs[name] = Decimal(str(kwargs[name]))

    params = VaultParams(**kwargs)
    validate_params(params)
    return params
