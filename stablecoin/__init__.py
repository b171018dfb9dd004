"""
stablecoin - Collateral-Backed Stablecoin Vault

Users lock a reserve asset to borrow a price-pegged token, exchange between
the two at the oracle's spot price, and undercollateralized loans are sold
in an ascending auction. At expiry the exchange rate is frozen.

Usage:
    from datetime import datetime
    from decimal import Decimal
    from stablecoin import (
        Ledger, VaultEngine, VaultParams, Trigger,
        TimeSeriesPricingSource, reserve_asset,
    )

    ledger = Ledger("main", datetime(2025, 1, 1), verbose=False)
    ledger.register_unit(reserve_asset("GBYTE"))

    oracle = TimeSeriesPricingSource(oracle="oracle")
    oracle.add_prices({"GBYTE_USD": Decimal("20"), "GBYTE_USD_MA": Decimal("20")}, datetime(2025, 1, 1))

    engine = VaultEngine(ledger, oracle)
    engine.deploy("USD_VAULT", "USD stablecoin", VaultParams(
        oracle="oracle", feed_name="GBYTE_USD", ma_feed_name="GBYTE_USD_MA",
        overcollateralization_ratio=Decimal("1.5"), liquidation_ratio=Decimal("1.3"),
        decimals=2, auction_period=3600, expiry_date=datetime(2025, 6, 1),
        max_loan_value_in_underlying=10_000_000,
    ))
    engine.fund("alice", "GBYTE", 100 * 10**9)

    engine.submit("USD_VAULT", Trigger("t1", "alice", data={"define": 1}))
    response = engine.submit("USD_VAULT", Trigger("t2", "alice", {"GBYTE": 1_500_000_000}))
    response.response_vars   # {'id': 't2', 'amount': 2000}
"""

# Core types
from .core import (
    LedgerView,
    SmartContract,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    reserve_asset,
    pegged_token,
    SYSTEM_WALLET,
    UNIT_TYPE_RESERVE,
    UNIT_TYPE_PEGGED_TOKEN,
    UNIT_TYPE_STABLECOIN_VAULT,
)

# Vault errors
from .core import (
    VaultError,
    AlreadyDefined,
    AssetNotDefined,
    NotFound,
    NotOwner,
    AlreadyRepaid,
    AuctionActive,
    StillRunning,
    AuctionExpired,
    Expired,
    TooEarly,
    AlreadyRecorded,
    InvalidTrigger,
    UnsupportedAsset,
    MissingPayment,
    BelowMinimum,
    BidTooLow,
    SufficientlyCollateralized,
    SupplyCapExceeded,
    InsufficientPayment,
    ExceedsCirculatingSupply,
    InsufficientReserve,
    NoPriceAvailable,
)

# Ledger
from .ledger import Ledger

# Money math
from .fixed_point import (
    mul_div,
    floor_mul_div,
    ceil_mul_div,
    reserve_to_peg,
    peg_to_reserve,
    is_ratio_at_least,
    min_outbid,
)

# Oracle
from .oracle import (
    PricingSource,
    StaticPricingSource,
    TimeSeriesPricingSource,
    FeedReading,
    read_feeds,
    effective_price,
    spot_price,
    moving_average_path,
    publish_path,
)

# Vault model
from .vault import (
    VaultParams,
    Position,
    VaultState,
    create_vault,
    params_from_mapping,
    load_vault,
    to_state_dict,
    state_vars,
    to_epoch_seconds,
)

# Triggers and operations
from .triggers import Trigger, Response, TriggerResult
from .registry import compute_define
from .positions import (
    compute_issue,
    compute_add_collateral,
    compute_repay,
    adjust_circulating_supply,
)
from .exchange import compute_mint, compute_redeem
from .expiry import compute_record_expiry
from .auction import compute_seize, compute_end_auction
from .router import process_trigger, transact

# Engine
from .engine import VaultEngine, vault_contract


__version__ = "0.1.0"
