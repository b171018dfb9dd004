#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: A Stablecoin Vault Step by Step

A walk through one vault's life on a ledger. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Setup        - Deploying the vault, defining the token, a first loan
  4-5:   Exchange     - Mint and redeem at spot, what a bounce looks like
  6-8:   Liquidation  - A falling moving average, seize, outbid, settlement
  9-10:  Expiry       - Freezing the rate, replaying the log

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from stablecoin import (
    Ledger, VaultEngine, VaultParams, Trigger, TimeSeriesPricingSource,
    reserve_asset, load_vault, read_feeds, effective_price, publish_path,
)
from stablecoin.auction import calculate_opening_bid, calculate_min_outbid


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    vault_life: timedelta = timedelta(days=30)

    # Vault parameters
    overcollateralization_ratio: Decimal = Decimal("1.5")
    liquidation_ratio: Decimal = Decimal("1.3")
    decimals: int = 2
    auction_period: int = 3600

    # Market
    opening_price: Decimal = Decimal("20")
    crash_price: Decimal = Decimal("15")
    path_hours: int = 24
    ma_window: int = 6

    # Wallets
    initial_gbytes: int = 100


CONFIG = DemoConfig()
GBYTE = 10 ** 9
VAULT = "USD_VAULT"

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_response(label: str, response):
    if response.bounced:
        print(f"{label}: BOUNCED ({response.error})")
    else:
        print(f"{label}: {dict(response.response_vars)}")


def show_balances(engine: VaultEngine, asset: str, wallets=("alice", "bob", "charlie", "vault")):
    for wallet in wallets:
        gbytes = Decimal(engine.ledger.get_balance(wallet, "GBYTE")) / GBYTE
        tokens = engine.ledger.get_unit(asset).format_amount(engine.ledger.get_balance(wallet, asset))
        print(f"  {wallet:<8} {gbytes:>16.9f} GBYTE   {tokens:>8} USD")


# ============================================================================
# PHASE 1: SETUP (Steps 1-3)
# ============================================================================

def step_01_deploy():
    step_header(1, "Deploying the Vault",
        "A vault is a unit on the ledger whose state holds its parameters and loans.")

    print("""
    The ledger knows one real asset: GBYTE, 9 decimals. The vault is
    registered by a DEPLOY transaction, so the transaction log alone can
    rebuild it later. Users are funded from the system wallet.
    """)
    wait_for_enter()

    ledger = Ledger("tutorial", CONFIG.start_time, verbose=False)
    ledger.register_unit(reserve_asset("GBYTE"))

    oracle = TimeSeriesPricingSource(oracle="oracle")
    oracle.add_prices(
        {"GBYTE_USD": CONFIG.opening_price, "GBYTE_USD_MA": CONFIG.opening_price},
        CONFIG.start_time,
    )

    engine = VaultEngine(ledger, oracle, verbose=True)
    params = VaultParams(
        oracle="oracle",
        feed_name="GBYTE_USD",
        ma_feed_name="GBYTE_USD_MA",
        overcollateralization_ratio=CONFIG.overcollateralization_ratio,
        liquidation_ratio=CONFIG.liquidation_ratio,
        decimals=CONFIG.decimals,
        auction_period=CONFIG.auction_period,
        expiry_date=CONFIG.start_time + CONFIG.vault_life,
        max_loan_value_in_underlying=10_000_000,
    )
    engine.deploy(VAULT, "USD stablecoin", params)
    for wallet in ("alice", "bob", "charlie"):
        engine.fund(wallet, "GBYTE", CONFIG.initial_gbytes * GBYTE)

    section_header("Ledger")
    print(f"Units:        {ledger.list_units()}")
    print(f"Wallets:      {sorted(ledger.registered_wallets)}")
    print(f"Transactions: {len(ledger.transaction_log)}")
    return engine


def step_02_define(engine: VaultEngine) -> str:
    step_header(2, "Defining the Pegged Token",
        "The token is created once, named after the trigger that defined it.")
    wait_for_enter()

    response = engine.submit(VAULT, Trigger("define-1", "alice", {"GBYTE": 10_000}, {"define": 1}))
    show_response("define", response)
    asset = response.response_vars['asset']
    print(f"\nVault state: {engine.state_vars(VAULT)}")

    response = engine.submit(VAULT, Trigger("define-2", "bob", data={"define": 1}))
    show_response("define again", response)
    return asset


def step_03_borrow(engine: VaultEngine, asset: str):
    step_header(3, "Borrowing",
        "Lock 1.5 GBYTE at a moving average of 20 and R_open 1.5: borrow 20.00.")

    print("""
    principal = floor(collateral * P_ma * 10^decimals / (R_open * 10^9))
              = floor(1.5e9 * 20 * 100 / (1.5 * 1e9)) = 2000 base units
    """)
    wait_for_enter()

    response = engine.submit(VAULT, Trigger("loan-1", "alice", {"GBYTE": 1_500_000_000}))
    show_response("issue", response)
    section_header("Balances")
    show_balances(engine, asset)
    print(f"\nVault state: {engine.state_vars(VAULT)}")


# ============================================================================
# PHASE 2: EXCHANGE (Steps 4-5)
# ============================================================================

def step_04_mint_redeem(engine: VaultEngine, asset: str):
    step_header(4, "Mint and Redeem",
        "Exchange directly with the vault at the spot price, outside any loan.")
    wait_for_enter()

    response = engine.submit(VAULT, Trigger("mint-1", "bob", {"GBYTE": GBYTE}, {"mint": 1}))
    show_response("bob mints with 1 GBYTE", response)
    response = engine.submit(VAULT, Trigger("redeem-1", "bob", {asset: 999}))
    show_response("bob redeems 9.99", response)

    section_header("Supply")
    print(f"circulating_supply: {engine.state_vars(VAULT)['circulating_supply']}")
    print(f"ledger supply:      {engine.ledger.total_supply(asset)}")


def step_05_bounce(engine: VaultEngine, asset: str):
    step_header(5, "Bounces",
        "A rejected trigger changes nothing except refunding its payments.")
    wait_for_enter()

    before = engine.ledger.get_balance("bob", asset)
    response = engine.submit(VAULT, Trigger("bad-1", "bob", {asset: 1000}, {"repay": 1, "id": "loan-1"}))
    show_response("bob repays alice's loan", response)
    print(f"bob's tokens before/after: {before} / {engine.ledger.get_balance('bob', asset)}")

    response = engine.submit(VAULT, Trigger("bad-2", "charlie", {"GBYTE": GBYTE}, {"seize": 1, "id": "loan-1"}))
    show_response("charlie seizes a healthy loan", response)
    print("the GBYTE comes back minus the 1000 byte processing fee")


# ============================================================================
# PHASE 3: LIQUIDATION (Steps 6-8)
# ============================================================================

def step_06_price_path(engine: VaultEngine):
    step_header(6, "A Falling Market",
        "The oracle publishes an hourly spot path and its trailing moving average.")
    wait_for_enter()

    params, state = load_vault(engine.ledger, VAULT)
    drop = CONFIG.opening_price - CONFIG.crash_price
    path = [
        (CONFIG.start_time + timedelta(hours=h),
         CONFIG.opening_price - drop * h / CONFIG.path_hours)
        for h in range(1, CONFIG.path_hours + 1)
    ]
    publish_path(engine.pricing_source, params, path, CONFIG.ma_window)

    end = path[-1][0]
    engine.step(end)
    reading = read_feeds(engine.pricing_source, params, end)
    position = state.get_position("loan-1")
    ratio = Decimal(position.collateral) / GBYTE * reading.moving_average * 10 ** params.decimals / position.principal

    print(f"Spot at {end}:    {reading.spot}")
    print(f"Moving average:          {reading.moving_average:.4f}")
    print(f"Loan collateral ratio:   {ratio:.4f} (liquidation below {params.liquidation_ratio})")


def step_07_seize(engine: VaultEngine):
    step_header(7, "Seize and Outbid",
        "Anyone may bid for an undercollateralized loan. The best bid wins it.")
    wait_for_enter()

    params, state = load_vault(engine.ledger, VAULT)
    reading = read_feeds(engine.pricing_source, params, engine.ledger.current_time)
    price = effective_price(params, state, reading)
    position = state.get_position("loan-1")
    opening = calculate_opening_bid(position, price, params)
    print(f"Minimum opening bid: {opening} bytes\n")

    show_response("charlie bids", engine.submit(
        VAULT, Trigger("seize-1", "charlie", {"GBYTE": opening}, {"seize": 1, "id": "loan-1"})))

    _, state = load_vault(engine.ledger, VAULT)
    outbid = calculate_min_outbid(state.get_position("loan-1"), params)
    show_response("bob bids one byte short", engine.submit(
        VAULT, Trigger("seize-2", "bob", {"GBYTE": outbid - 1}, {"seize": 1, "id": "loan-1"})))
    show_response("bob outbids", engine.submit(
        VAULT, Trigger("seize-3", "bob", {"GBYTE": outbid}, {"seize": 1, "id": "loan-1"})))
    show_response("alice repays", engine.submit(
        VAULT, Trigger("repay-1", "alice", {engine.state_vars(VAULT)['asset']: 2000}, {"repay": 1, "id": "loan-1"})))


def step_08_settle(engine: VaultEngine):
    step_header(8, "Settlement",
        "The keeper settles the auction once its deadline has passed.")
    wait_for_enter()

    deadline = engine.ledger.current_time + timedelta(seconds=CONFIG.auction_period)
    for tx in engine.step(deadline):
        print(tx)

    vars_ = engine.state_vars(VAULT)
    print(f"\nloan-1 owner:      {vars_['loan-1_owner']}")
    print(f"loan-1 collateral: {vars_['loan-1_collateral']}")

    section_header("The new owner needs tokens to repay")
    show_response("bob mints with 1 GBYTE", engine.submit(
        VAULT, Trigger("mint-3", "bob", {"GBYTE": GBYTE}, {"mint": 1})))


# ============================================================================
# PHASE 4: EXPIRY (Steps 9-10)
# ============================================================================

def step_09_expiry(engine: VaultEngine, asset: str):
    step_header(9, "Expiry",
        "At the expiry date the moving average is frozen and exchange closes.")
    wait_for_enter()

    expiry = CONFIG.start_time + CONFIG.vault_life
    for tx in engine.step(expiry):
        print(tx)
    print(f"\nexpiry_exchange_rate: {engine.state_vars(VAULT)['expiry_exchange_rate']:.4f}\n")

    show_response("charlie mints", engine.submit(
        VAULT, Trigger("mint-2", "charlie", {"GBYTE": GBYTE}, {"mint": 1})))
    show_response("bob repays the loan bob won", engine.submit(
        VAULT, Trigger("repay-2", "bob", {asset: 2000}, {"repay": 1, "id": "loan-1"})))


def step_10_replay(engine: VaultEngine, asset: str):
    step_header(10, "Replay and Conservation",
        "The transaction log is the whole story: replay rebuilds every balance and the vault.")
    wait_for_enter()

    replayed = engine.ledger.replay()
    same_vault = replayed.get_unit_state(VAULT) == engine.ledger.get_unit_state(VAULT)
    same_balances = all(
        replayed.get_balance(w, u) == engine.ledger.get_balance(w, u)
        for w in engine.ledger.registered_wallets
        for u in engine.ledger.units
    )
    print(f"Transactions in log:   {len(engine.ledger.transaction_log)}")
    print(f"Replayed vault equal:  {same_vault}")
    print(f"Replayed balances:     {same_balances}")
    print(f"Double entry valid:    {engine.ledger.verify_double_entry()['valid']}")

    section_header("Final Balances")
    show_balances(engine, asset)


def main():
    print("STABLECOIN VAULT TUTORIAL")
    engine = step_01_deploy()
    asset = step_02_define(engine)
    step_03_borrow(engine, asset)
    step_04_mint_redeem(engine, asset)
    step_05_bounce(engine, asset)
    step_06_price_path(engine)
    step_07_seize(engine)
    step_08_settle(engine)
    step_09_expiry(engine, asset)
    step_10_replay(engine, asset)
    print("\nDone.")


if __name__ == "__main__":
    main()
