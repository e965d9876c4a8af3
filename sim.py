"""
Core Staking Simulation Module

This module contains the day-stepped simulation engine for the MS staking
economic model. It includes the token release calculator, the exit
distribution splitter, the trading profit calculator, the bonding-curve
pool stepper and the simulation loop that composes them one day at a time.

All functions are pure: inputs are never mutated, every call returns new
objects, and per-order running state is threaded explicitly between days.
"""

import logging
import math
from dataclasses import dataclass, field, replace, asdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from models import (
    COIN_STANDARD,
    GOLD_STANDARD,
    DailySimulation,
    DaysOrder,
    Order,
    OrderDailyDetail,
    PackageConfig,
    PackageOrder,
    Pool,
    SimulationConfig,
)

logger = logging.getLogger(__name__)

# Net profit left after the user share is split evenly between platform and broker
PLATFORM_SHARE_OF_REMAINDER = 0.5

# Pool floors
MIN_POOL_USDC = 1.0
MIN_POOL_TOKENS = 1.0


@dataclass(frozen=True)
class ExitPercentages:
    """How a day's released tokens are split (need not sum to 100)"""
    withdraw: float
    keep: float
    convert: float


@dataclass(frozen=True)
class ExitDistribution:
    """Token quantities produced by splitting one release"""
    withdraw: float  # tokens leaving the system
    keep: float  # tokens kept as trading fee
    convert: float  # tokens converted to trading capital
    burn: float  # burned share of the withdrawn tokens
    secondary_market: float  # withdrawn tokens sold into the pool
    trading_capital_usdc: float  # USDC value of the converted tokens × multiplier


@dataclass(frozen=True)
class TradingResult:
    """Profit split and fund flows of one trading run"""
    trade_volume: float
    gross_profit: float
    fee: float
    net_profit: float
    user_profit: float
    platform_profit: float
    broker_profit: float
    lp_usdc: float
    lp_token: float  # USDC value of the token side
    buyback: float
    reserve: float


@dataclass(frozen=True)
class OrderState:
    """Running per-order counters carried from one day to the next"""
    cum_released: float = 0.0
    tokens_in_system: float = 0.0
    tokens_withdrawn: float = 0.0
    total_to_release: float = 0.0  # fixed-quantity total, set on the first release day


# Day-level totals accumulated across orders
FLOW_KEYS = (
    'released', 'burn', 'secondary_market', 'trading_fee_tokens', 'trading_capital_usdc',
    'selling_revenue', 'withdraw_fee', 'trading_volume', 'user_profit', 'platform_profit',
    'broker_profit', 'trading_fee', 'lp_usdc', 'lp_token_value',
)


@dataclass(frozen=True)
class OrderStep:
    """One order's contribution to one day"""
    state: OrderState
    detail: OrderDailyDetail
    flows: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class DayStep:
    """Outcome of advancing the whole system by one day"""
    record: DailySimulation
    pool: Pool
    states: Dict[str, OrderState]
    details: List[OrderDailyDetail]


@dataclass
class SimulationResult:
    """Daily records plus the per-order ledger of one simulation run"""

    daily: List[DailySimulation]
    order_details: Dict[str, List[OrderDailyDetail]]
    final_pool: Pool
    final_states: Dict[str, OrderState]

    def to_frame(self) -> pd.DataFrame:
        """Daily records as a DataFrame indexed by day"""
        if not self.daily:
            return pd.DataFrame(columns=list(DailySimulation.__dataclass_fields__))
        return pd.DataFrame([asdict(r) for r in self.daily]).set_index('day', drop=False)

    def order_frame(self, order_id: str) -> pd.DataFrame:
        """Ledger of a single order as a DataFrame"""
        rows = self.order_details.get(order_id, [])
        return pd.DataFrame([asdict(r) for r in rows], columns=list(OrderDailyDetail.__dataclass_fields__))

    def prices(self) -> np.ndarray:
        """Closing price of each simulated day"""
        return price_series(self.daily)


# ---------------------------------------------------------------------------
# Release
# ---------------------------------------------------------------------------

def compute_daily_release(order: Order, config: SimulationConfig, current_price: float) -> float:
    """
    Tokens released to an order for one day

    Value-pegged (gold standard) package orders release a fixed USDC value
    per day, so the token quantity shrinks as the price rises. Fixed-quantity
    (coin standard) package orders and all days-mode orders release a fixed
    token total evenly over their duration; the total is taken from
    order.total_to_release when set, otherwise priced at current_price.

    Args:
        order: Package or days order
        config: Simulation configuration
        current_price: Token price in USDC (yesterday's close)

    Returns:
        Token amount, 0 for unknown tiers, disabled staking or non-positive price
    """
    if not config.staking_enabled or current_price <= 0:
        return 0.0

    if isinstance(order, DaysOrder):
        days_config = config.get_days_config(order.duration_days)
        if days_config is None or order.duration_days <= 0:
            return 0.0
        total = order.total_to_release or order.amount / current_price * days_config.release_multiplier
        return total / order.duration_days

    if isinstance(order, PackageOrder):
        pkg = config.get_package(order.package_tier)
        if pkg is None or order.days_staked <= 0:
            return 0.0
        if config.release_mode == GOLD_STANDARD:
            daily_usdc = order.amount * pkg.release_multiplier / order.days_staked
            return daily_usdc / current_price
        total = order.total_to_release or order.amount / current_price * pkg.release_multiplier
        return total / order.days_staked

    raise TypeError(f"Unsupported order type: {type(order).__name__}")


def _principal_interest(amount: float, days: int, tokens: float, price: float) -> Tuple[float, float]:
    if tokens <= 0 or days <= 0:
        return 0.0, 0.0
    principal = amount / days
    return principal, max(0.0, tokens * price - principal)


def release_breakdown(order: Order, config: SimulationConfig, current_price: float) -> Tuple[float, float, float]:
    """Daily release as (tokens, principal USDC, interest USDC)"""
    tokens = compute_daily_release(order, config, current_price)
    principal, interest = _principal_interest(order.amount, order.days_staked, tokens, current_price)
    return tokens, principal, interest


# ---------------------------------------------------------------------------
# Exit distribution
# ---------------------------------------------------------------------------

def exit_percentages_for(order: Order, pkg: Optional[PackageConfig]) -> ExitPercentages:
    """
    Release split for an order: its own withdraw_percent when set
    (the rest converts to trading capital), else the package defaults
    """
    if order.withdraw_percent is not None:
        withdraw = min(max(order.withdraw_percent, 0.0), 100.0)
        return ExitPercentages(withdraw=withdraw, keep=0.0, convert=100.0 - withdraw)
    if pkg is None:
        return ExitPercentages(withdraw=0.0, keep=100.0, convert=0.0)
    return ExitPercentages(
        withdraw=pkg.release_withdraw_percent,
        keep=pkg.release_keep_percent,
        convert=pkg.release_convert_percent,
    )


def split_exit_distribution(released_tokens: float, price: float, percentages: ExitPercentages,
                            config: SimulationConfig,
                            trading_capital_multiplier: Optional[float] = None) -> ExitDistribution:
    """
    Partition released tokens into withdraw / keep / convert

    The three percentages are rescaled to sum to 100 before use. A burn
    share of the withdrawn tokens is destroyed and the rest is sold on the
    secondary market. Converted tokens become trading capital worth
    tokens × price × multiplier.

    Args:
        released_tokens: Tokens released today
        price: Token price in USDC
        percentages: Requested split
        config: Simulation configuration (burn ratio, global multiplier)
        trading_capital_multiplier: Package multiplier, global one when None

    Returns:
        ExitDistribution with all token and USDC amounts
    """
    total = percentages.withdraw + percentages.keep + percentages.convert
    if total > 0:
        withdraw = released_tokens * percentages.withdraw / total
        keep = released_tokens * percentages.keep / total
        convert = released_tokens * percentages.convert / total
    else:
        # nothing requested: tokens stay in the system
        withdraw, keep, convert = 0.0, released_tokens, 0.0

    burn = withdraw * (config.exit_burn_ratio / 100)
    multiplier = (trading_capital_multiplier if trading_capital_multiplier is not None
                  else config.trading_capital_multiplier)

    return ExitDistribution(
        withdraw=withdraw,
        keep=keep,
        convert=convert,
        burn=burn,
        secondary_market=withdraw - burn,
        trading_capital_usdc=convert * price * multiplier,
    )


# ---------------------------------------------------------------------------
# Trading
# ---------------------------------------------------------------------------

def compute_trading_profit(capital: float, profit_rate: float, fee_rate: float,
                           user_share_percent: float, config: SimulationConfig) -> TradingResult:
    """
    Profit split and fund flows for trading a given capital

    Args:
        capital: Traded USDC
        profit_rate: Profit as a fraction of capital (0.05 = 5%)
        fee_rate: Fee as a percent of gross profit
        user_share_percent: User share of net profit in percent
        config: Simulation configuration (fund flow ratios)

    Returns:
        TradingResult; net profit never drops below zero
    """
    gross_profit = capital * profit_rate
    fee = gross_profit * (fee_rate / 100)
    net_profit = max(0.0, gross_profit - fee)

    user_profit = net_profit * (user_share_percent / 100)
    remaining = net_profit - user_profit
    platform_profit = remaining * PLATFORM_SHARE_OF_REMAINDER
    broker_profit = remaining - platform_profit

    # Fund flows are taken from the traded capital, not from profit
    return TradingResult(
        trade_volume=capital,
        gross_profit=gross_profit,
        fee=fee,
        net_profit=net_profit,
        user_profit=user_profit,
        platform_profit=platform_profit,
        broker_profit=broker_profit,
        lp_usdc=capital * (config.lp_pool_usdc_ratio / 100),
        lp_token=capital * (config.lp_pool_token_ratio / 100),
        buyback=capital * (config.buyback_ratio / 100),
        reserve=capital * (config.reserve_ratio / 100),
    )


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------

def step_pool(pool: Pool, usdc_added: float, token_added: float,
              tokens_sold_to_pool: float, tokens_burned: float) -> Pool:
    """
    Apply one day of flows to the pool

    Order of operations: add liquidity, absorb secondary-market sells at the
    pre-step price (USDC out capped so at least 1 USDC stays, the sell is
    partially filled when capped), record burns, then reprice from reserves.

    Args:
        pool: Pool before the step
        usdc_added: USDC added as liquidity
        token_added: Tokens added as liquidity
        tokens_sold_to_pool: Tokens sold into the pool
        tokens_burned: Tokens burned outside the pool

    Returns:
        New pool; negative inputs are ignored
    """
    usdc = pool.usdc_balance
    tokens = pool.token_balance

    if usdc_added > 0 or token_added > 0:
        usdc += max(usdc_added, 0.0)
        tokens += max(token_added, 0.0)

    if tokens_sold_to_pool > 0:
        price = pool.price if pool.price > 0 else 1.0
        usdc_out = min(tokens_sold_to_pool * price, max(0.0, usdc - MIN_POOL_USDC))
        tokens += usdc_out / price
        usdc -= usdc_out

    tokens = max(MIN_POOL_TOKENS, tokens)
    return Pool(
        usdc_balance=usdc,
        token_balance=tokens,
        price=usdc / tokens,
        lp_tokens=math.sqrt(max(usdc * tokens, 0.0)),
        total_buyback=pool.total_buyback,
        total_burn=pool.total_burn + max(tokens_burned, 0.0),
    )


def apply_deposit(pool: Pool, amount: float, config: SimulationConfig) -> Pool:
    """
    Allocate a new order's deposit to the pool

    deposit_lp_ratio of the deposit is added to both sides at the current
    price; deposit_buyback_ratio buys tokens out of the pool (at least one
    token is left behind). The rest is trading reserve and does not touch
    the pool.

    Args:
        pool: Pool before the deposit
        amount: Deposited USDC
        config: Simulation configuration

    Returns:
        New pool with updated reserves and cumulative buyback
    """
    usdc = pool.usdc_balance
    tokens = pool.token_balance
    total_buyback = pool.total_buyback
    price = pool.price

    to_lp = amount * (config.deposit_lp_ratio / 100)
    to_buyback = amount * (config.deposit_buyback_ratio / 100)

    if to_lp > 0 and price > 0:
        usdc += to_lp
        tokens += to_lp / price

    if to_buyback > 0 and price > 0 and tokens > MIN_POOL_TOKENS:
        bought = min(to_buyback / price, max(0.0, tokens - MIN_POOL_TOKENS))
        if bought > 0:
            spent = bought * price
            usdc += spent
            tokens -= bought
            total_buyback += spent

    tokens = max(MIN_POOL_TOKENS, tokens)
    return Pool(
        usdc_balance=usdc,
        token_balance=tokens,
        price=usdc / tokens,
        lp_tokens=math.sqrt(max(usdc * tokens, 0.0)),
        total_buyback=total_buyback,
        total_burn=pool.total_burn,
    )


def replay_deposits(orders: Sequence[Order], config: SimulationConfig, pool: Optional[Pool] = None) -> Pool:
    """Pool after applying every order's deposit in sequence, from the configured initial pool by default"""
    pool = pool if pool is not None else Pool.from_config(config)
    for order in orders:
        pool = apply_deposit(pool, order.amount, config)
    return pool


# ---------------------------------------------------------------------------
# Day step
# ---------------------------------------------------------------------------

def _idle_step(order: Order, state: OrderState, day: int, price: float, trading_capital: float = 0.0) -> OrderStep:
    detail = OrderDailyDetail(
        day=day, order_id=order.id,
        principal_release=0.0, interest_release=0.0, daily_release=0.0,
        price=price, cum_released=state.cum_released,
        tokens_in_system=state.tokens_in_system, trading_capital=trading_capital,
        forex_income=0.0, withdrawn_tokens=0.0, withdraw_fee=0.0,
    )
    return OrderStep(state=state, detail=detail)


def _trade(volume: float, profit_rate_percent: float, fee_rate: float, share: float,
           config: SimulationConfig, flows: Dict[str, float]) -> float:
    """Run one order's trading for the day, add it to flows and return the user profit"""
    trade = compute_trading_profit(volume, profit_rate_percent / 100, fee_rate, share, config)
    flows['trading_volume'] = volume
    flows['user_profit'] = trade.user_profit
    flows['platform_profit'] = trade.platform_profit
    flows['broker_profit'] = trade.broker_profit
    flows['trading_fee'] = trade.fee
    flows['lp_usdc'] = trade.lp_usdc
    flows['lp_token_value'] = trade.lp_token
    # trade.buyback is not applied to the pool; buyback only comes from deposits
    return trade.user_profit


def _advance_package_order(order: PackageOrder, state: OrderState, config: SimulationConfig,
                           price: float, day: int) -> OrderStep:
    effective_day = day - order.start_day
    pkg = config.get_package(order.package_tier)
    if pkg is None:
        logger.warning("Order %s references unknown package tier %s", order.id, order.package_tier)
        return _idle_step(order, state, day, price)
    if effective_day < 1 or not config.staking_enabled or effective_day > order.days_staked:
        return _idle_step(order, state, day, price)

    total_to_release = state.total_to_release or order.total_to_release
    if config.release_mode == COIN_STANDARD and not total_to_release and price > 0:
        total_to_release = order.amount / price * pkg.release_multiplier

    tokens, principal, interest = release_breakdown(
        replace(order, total_to_release=total_to_release), config, price
    )
    multiplier = config.trading_capital_multiplier_for(pkg)
    exit_dist = split_exit_distribution(tokens, price, exit_percentages_for(order, pkg), config, multiplier)

    flows = {
        'released': tokens,
        'burn': exit_dist.burn,
        'secondary_market': exit_dist.secondary_market,
        'trading_fee_tokens': exit_dist.keep,
        'trading_capital_usdc': exit_dist.trading_capital_usdc,
        'selling_revenue': exit_dist.secondary_market * price,
    }

    # Trading capital follows the current config, it is not frozen at order time
    trading_capital = order.amount * multiplier
    forex_income = 0.0
    if effective_day > config.release_starts_trading_days:
        volume = trading_capital * (config.daily_trading_volume_percent / 100)
        forex_income = _trade(volume, pkg.trading_profit_rate, pkg.trading_fee_rate,
                              pkg.profit_share_percent, config, flows)

    new_state = OrderState(
        cum_released=state.cum_released + tokens,
        tokens_in_system=state.tokens_in_system + exit_dist.keep + exit_dist.convert,
        tokens_withdrawn=state.tokens_withdrawn + exit_dist.withdraw,
        total_to_release=total_to_release,
    )
    detail = OrderDailyDetail(
        day=day, order_id=order.id,
        principal_release=principal, interest_release=interest, daily_release=tokens,
        price=price, cum_released=new_state.cum_released,
        tokens_in_system=new_state.tokens_in_system, trading_capital=trading_capital,
        forex_income=forex_income, withdrawn_tokens=exit_dist.withdraw, withdraw_fee=0.0,
    )
    return OrderStep(state=new_state, detail=detail, flows=flows)


def _advance_days_order(order: DaysOrder, state: OrderState, config: SimulationConfig,
                        price: float, day: int) -> OrderStep:
    effective_day = day - order.start_day
    days_config = config.get_days_config(order.duration_days)
    if days_config is None:
        logger.warning("Order %s references unknown days tier %s", order.id, order.duration_days)
        return _idle_step(order, state, day, price)
    if effective_day < 1:
        return _idle_step(order, state, day, price)
    if not config.staking_enabled or effective_day > order.duration_days:
        return _idle_step(order, state, day, price, trading_capital=state.tokens_in_system * price)

    total_to_release = state.total_to_release or order.total_to_release
    if not total_to_release and price > 0:
        total_to_release = order.amount / price * days_config.release_multiplier

    tokens = compute_daily_release(replace(order, total_to_release=total_to_release), config, price)
    if config.multiplier_cap_enabled and price > 0:
        headroom = order.amount * days_config.release_multiplier / price - state.cum_released
        tokens = min(tokens, max(0.0, headroom))
    principal, interest = _principal_interest(order.amount, order.duration_days, tokens, price)

    withdrawn = 0.0
    if order.withdraw_percent is not None:
        withdrawn = tokens * min(max(order.withdraw_percent, 0.0), 100.0) / 100
    burn = withdrawn * (config.exit_burn_ratio / 100)
    withdraw_fee = withdrawn * price * (days_config.withdraw_fee_percent / 100)

    flows = {
        'released': tokens,
        'burn': burn,
        'secondary_market': withdrawn - burn,
        'selling_revenue': (withdrawn - burn) * price,
        'withdraw_fee': withdraw_fee,
    }

    new_state = OrderState(
        cum_released=state.cum_released + tokens,
        tokens_in_system=state.tokens_in_system + tokens - withdrawn,
        tokens_withdrawn=state.tokens_withdrawn + withdrawn,
        total_to_release=total_to_release,
    )

    # Trading capital is the value of the tokens still held in the system
    trading_capital = new_state.tokens_in_system * price
    forex_income = 0.0
    if effective_day > config.release_starts_trading_days and trading_capital > 0:
        volume = trading_capital * (config.daily_trading_volume_percent / 100)
        forex_income = _trade(volume, days_config.trading_profit_rate, days_config.trading_fee_rate,
                              days_config.profit_share_percent, config, flows)

    detail = OrderDailyDetail(
        day=day, order_id=order.id,
        principal_release=principal, interest_release=interest, daily_release=tokens,
        price=price, cum_released=new_state.cum_released,
        tokens_in_system=new_state.tokens_in_system, trading_capital=trading_capital,
        forex_income=forex_income, withdrawn_tokens=withdrawn, withdraw_fee=withdraw_fee,
    )
    return OrderStep(state=new_state, detail=detail, flows=flows)


def advance_order(order: Order, state: OrderState, config: SimulationConfig, price: float, day: int) -> OrderStep:
    """
    Advance a single order by one day

    Args:
        order: Order to advance
        state: Running counters after the previous day
        config: Simulation configuration
        price: Opening price of the day
        day: Simulation day (1-based)

    Returns:
        OrderStep with the new counters, the ledger entry and the day's flows
    """
    if isinstance(order, DaysOrder):
        return _advance_days_order(order, state, config, price, day)
    if isinstance(order, PackageOrder):
        return _advance_package_order(order, state, config, price, day)
    raise TypeError(f"Unsupported order type: {type(order).__name__}")


def simulate_day(day: int, orders: Sequence[Order], states: Dict[str, OrderState],
                 pool: Pool, config: SimulationConfig) -> DayStep:
    """
    Advance every order and the pool by one day

    Releases and trading are priced at the opening price (the previous
    day's close); the pool is stepped once with the aggregated flows.

    Args:
        day: Simulation day (1-based)
        orders: Orders in the simulation
        states: Running counters per order id after the previous day
        pool: Pool at the start of the day
        config: Simulation configuration

    Returns:
        DayStep with the day's record, the new pool and the new counters
    """
    price = pool.price
    totals = dict.fromkeys(FLOW_KEYS, 0.0)
    new_states = dict(states)
    details = []

    for order in orders:
        step = advance_order(order, states.get(order.id, OrderState()), config, price, day)
        new_states[order.id] = step.state
        details.append(step.detail)
        for key, value in step.flows.items():
            totals[key] += value

    # LP token contribution is tracked in USDC; convert at the opening price
    lp_token_units = totals['lp_token_value'] / price if price > 0 else 0.0
    new_pool = step_pool(pool, totals['lp_usdc'], lp_token_units, totals['secondary_market'], totals['burn'])

    record = DailySimulation(
        day=day,
        tokens_released=totals['released'],
        price=new_pool.price,
        user_profit=totals['user_profit'],
        platform_profit=totals['platform_profit'],
        broker_profit=totals['broker_profit'],
        trading_fee_consumed=totals['trading_fee'],
        trading_volume=totals['trading_volume'],
        lp_pool_size=new_pool.lp_tokens,
        pool_usdc_balance=new_pool.usdc_balance,
        pool_token_balance=new_pool.token_balance,
        pool_total_value=new_pool.total_value,
        buyback_amount_usdc=0.0,
        burn_amount_tokens=totals['burn'],
        to_secondary_market_tokens=totals['secondary_market'],
        to_trading_fee_tokens=totals['trading_fee_tokens'],
        to_trading_capital_usdc=totals['trading_capital_usdc'],
        selling_revenue_usdc=totals['selling_revenue'],
        withdraw_fee_usdc=totals['withdraw_fee'],
        lp_contribution_usdc=totals['lp_usdc'],
        lp_contribution_token_value=totals['lp_token_value'],
        reserve_amount_usdc=totals['trading_volume'] * (config.reserve_ratio / 100),
    )
    return DayStep(record=record, pool=new_pool, states=new_states, details=details)


# ---------------------------------------------------------------------------
# Simulation loop
# ---------------------------------------------------------------------------

def run_simulation_with_details(orders: Sequence[Order], config: SimulationConfig, days: int,
                                initial_pool: Optional[Pool] = None) -> SimulationResult:
    """
    Run the day-stepped simulation and keep the per-order ledger

    Args:
        orders: Orders to simulate
        config: Simulation configuration
        days: Number of days; the loop always runs exactly this many
        initial_pool: Starting pool, derived from config when None

    Returns:
        SimulationResult with one record per day and one ledger per order

    Raises:
        ValueError: if two orders share an id
    """
    ids = [order.id for order in orders]
    if len(set(ids)) != len(ids):
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        raise ValueError(f"Duplicate order ids: {', '.join(duplicates)}")

    pool = initial_pool if initial_pool is not None else Pool.from_config(config)
    states = {order.id: OrderState() for order in orders}
    order_details = {order.id: [] for order in orders}
    daily = []

    for day in range(1, days + 1):
        step = simulate_day(day, orders, states, pool, config)
        daily.append(step.record)
        for detail in step.details:
            order_details[detail.order_id].append(detail)
        states = step.states
        pool = step.pool

    logger.debug(
        "Simulated %d days for %d orders: price %.6f -> %.6f",
        days, len(orders),
        initial_pool.price if initial_pool is not None else config.initial_price(),
        pool.price,
    )
    return SimulationResult(daily=daily, order_details=order_details, final_pool=pool, final_states=states)


def run_simulation(orders: Sequence[Order], config: SimulationConfig, days: int,
                   initial_pool: Optional[Pool] = None) -> List[DailySimulation]:
    """Run the simulation and return only the daily records"""
    return run_simulation_with_details(orders, config, days, initial_pool).daily


def price_series(daily: Sequence[DailySimulation]) -> np.ndarray:
    """Closing prices of a simulation, the trajectory input of the CLMM replay"""
    return np.array([r.price for r in daily], dtype=float)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderProgress:
    """Release progress of one order at a given simulation day"""
    order_id: str
    mode: str
    amount: float
    start_day: int
    total_days: int
    current_day: int
    days_remaining: int
    progress_percent: float
    daily_release: float
    total_released: float
    total_value: float
    trading_capital: float
    is_complete: bool


def order_release_progress(orders: Sequence[Order], config: SimulationConfig,
                           current_day: int, price: float) -> List[OrderProgress]:
    """
    Snapshot of each order's release progress at a price

    Args:
        orders: Orders to report on
        config: Simulation configuration
        current_day: Simulation day of the snapshot
        price: Price used to value releases

    Returns:
        One OrderProgress per order, in order
    """
    progress = []
    for order in orders:
        total_days = order.days_staked
        elapsed = max(0, current_day - order.start_day)
        effective_day = min(elapsed, total_days)
        daily_release = compute_daily_release(order, config, price)
        total_released = daily_release * effective_day

        if isinstance(order, DaysOrder):
            mode = 'days'
            trading_capital = total_released * price
        else:
            mode = 'package'
            trading_capital = order.amount * config.trading_capital_multiplier_for(config.get_package(order.package_tier))

        progress.append(OrderProgress(
            order_id=order.id,
            mode=mode,
            amount=order.amount,
            start_day=order.start_day,
            total_days=total_days,
            current_day=effective_day,
            days_remaining=max(0, total_days - elapsed),
            progress_percent=(effective_day / total_days * 100) if total_days > 0 else 100.0,
            daily_release=daily_release,
            total_released=total_released,
            total_value=total_released * price,
            trading_capital=trading_capital,
            is_complete=elapsed >= total_days,
        ))
    return progress


def summarize_orders(orders: Sequence[Order], result: SimulationResult) -> Tuple[pd.DataFrame, Dict[str, float]]:
    """
    Revenue and ROI per order, valued at the final simulated price

    Revenue = withdrawn tokens × price + retained tokens × price + forex income;
    net profit subtracts principal and withdrawal fees.

    Returns:
        (per-order DataFrame, grand totals dict)
    """
    final_price = result.daily[-1].price if result.daily else result.final_pool.price
    rows = []
    for order in orders:
        details = result.order_details.get(order.id, [])
        forex_income = sum(d.forex_income for d in details)
        withdrawn = sum(d.withdrawn_tokens for d in details)
        withdraw_fee = sum(d.withdraw_fee for d in details)
        retained = details[-1].tokens_in_system if details else 0.0

        selling_revenue = withdrawn * final_price
        retained_value = retained * final_price
        total_revenue = selling_revenue + retained_value + forex_income
        net_profit = total_revenue - order.amount - withdraw_fee
        rows.append({
            'order_id': order.id,
            'mode': 'days' if isinstance(order, DaysOrder) else 'package',
            'amount': order.amount,
            'start_day': order.start_day,
            'forex_income': forex_income,
            'withdrawn_tokens': withdrawn,
            'selling_revenue': selling_revenue,
            'retained_tokens': retained,
            'retained_value': retained_value,
            'withdraw_fee': withdraw_fee,
            'total_revenue': total_revenue,
            'net_profit': net_profit,
            'roi_percent': net_profit / order.amount * 100 if order.amount > 0 else 0.0,
        })

    frame = pd.DataFrame(rows, columns=[
        'order_id', 'mode', 'amount', 'start_day', 'forex_income', 'withdrawn_tokens',
        'selling_revenue', 'retained_tokens', 'retained_value', 'withdraw_fee',
        'total_revenue', 'net_profit', 'roi_percent',
    ])

    total_investment = float(frame['amount'].sum())
    totals = {
        'total_investment': total_investment,
        'selling_revenue': float(frame['selling_revenue'].sum()),
        'retained_value': float(frame['retained_value'].sum()),
        'forex_income': float(frame['forex_income'].sum()),
        'withdraw_fee': float(frame['withdraw_fee'].sum()),
        'total_revenue': float(frame['total_revenue'].sum()),
        'net_profit': float(frame['net_profit'].sum()),
    }
    totals['roi_percent'] = totals['net_profit'] / total_investment * 100 if total_investment > 0 else 0.0
    return frame, totals


def summary_metrics(result: SimulationResult, initial_pool: Pool) -> Dict[str, float]:
    """
    Key indicators of a simulation run

    Args:
        result: Output of run_simulation_with_details
        initial_pool: Pool the run started from

    Returns:
        Dictionary of key performance indicators
    """
    if not result.daily:
        raise ValueError("Simulation must cover at least one day to calculate metrics")

    prices = result.prices()
    frame = result.to_frame()
    start_price = initial_pool.price

    return {
        'initial_price': start_price,
        'final_price': float(prices[-1]),
        'min_price': float(np.min(prices)),
        'max_price': float(np.max(prices)),
        'price_change_percent': (prices[-1] / start_price - 1) * 100 if start_price > 0 else 0.0,
        'total_released': float(frame['tokens_released'].sum()),
        'total_burned': float(frame['burn_amount_tokens'].sum()),
        'total_sold_to_pool': float(frame['to_secondary_market_tokens'].sum()),
        'total_user_profit': float(frame['user_profit'].sum()),
        'total_platform_profit': float(frame['platform_profit'].sum()),
        'total_broker_profit': float(frame['broker_profit'].sum()),
        'total_trading_fee': float(frame['trading_fee_consumed'].sum()),
        'total_reserve': float(frame['reserve_amount_usdc'].sum()),
        'total_selling_revenue': float(frame['selling_revenue_usdc'].sum()),
        'final_pool_usdc': result.final_pool.usdc_balance,
        'final_pool_tokens': result.final_pool.token_balance,
        'final_pool_value': result.final_pool.total_value,
    }
