"""
Concentrated Liquidity (CLMM) Module

Uniswap V3 style position maths and a day-by-day replay of a position
against a price trajectory, used to study impermanent loss and fee income
for a price path produced by the staking simulation.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

MIN_PRICE = 1e-6
FEE_TIERS = (0.0005, 0.003, 0.01)


def calculate_liquidity(x: float, y: float, price: float, price_lower: float, price_upper: float) -> float:
    """
    Liquidity L of a deposit of x tokens and y USDC in [price_lower, price_upper]

    Below the range only the token side counts, above it only USDC; inside
    the range L is the smaller of the two constraints.
    """
    sqrt_p = math.sqrt(price)
    sqrt_pa = math.sqrt(price_lower)
    sqrt_pb = math.sqrt(price_upper)

    if price <= price_lower:
        if x <= 0:
            return 0.0
        return x * sqrt_pa * sqrt_pb / (sqrt_pb - sqrt_pa)
    if price >= price_upper:
        if y <= 0:
            return 0.0
        return y / (sqrt_pb - sqrt_pa)

    lx = x * sqrt_p * sqrt_pb / (sqrt_pb - sqrt_p) if x > 0 else 0.0
    ly = y / (sqrt_p - sqrt_pa) if y > 0 else 0.0
    if lx <= 0:
        return ly
    if ly <= 0:
        return lx
    return min(lx, ly)


def calculate_token_amounts(liquidity: float, price: float, price_lower: float,
                            price_upper: float) -> Tuple[float, float]:
    """Token and USDC held by a position of liquidity L at a price"""
    sqrt_p = math.sqrt(max(price, 0.0))
    sqrt_pa = math.sqrt(price_lower)
    sqrt_pb = math.sqrt(price_upper)

    if price <= price_lower:
        return liquidity * (1 / sqrt_pa - 1 / sqrt_pb), 0.0
    if price >= price_upper:
        return 0.0, liquidity * (sqrt_pb - sqrt_pa)
    return liquidity * (1 / sqrt_p - 1 / sqrt_pb), liquidity * (sqrt_p - sqrt_pa)


def calculate_position_value(liquidity: float, price: float, price_lower: float, price_upper: float) -> float:
    token_x, token_y = calculate_token_amounts(liquidity, price, price_lower, price_upper)
    return token_x * price + token_y


def calculate_hodl_value(initial_x: float, initial_y: float, price: float) -> float:
    return initial_x * price + initial_y


def calculate_impermanent_loss(hodl_value: float, position_value: float) -> Tuple[float, float]:
    """Impermanent loss as (USDC, percent of HODL value); positive means the LP underperforms"""
    absolute = hodl_value - position_value
    percentage = absolute / hodl_value * 100 if hodl_value > 0 else 0.0
    return absolute, percentage


def calculate_capital_efficiency(price_lower: float, price_upper: float) -> float:
    """Capital efficiency versus a full-range position: 1 / (1 - sqrt(Pa/Pb))"""
    if price_upper <= 0 or price_lower <= 0 or price_lower >= price_upper:
        return 1.0
    return 1 / (1 - math.sqrt(price_lower / price_upper))


def calculate_fee_accrual(liquidity: float, total_liquidity: float, volume: float,
                          fee_rate: float, in_range: bool) -> float:
    """Fees earned in a day: liquidity share × volume × fee rate, only while in range"""
    if not in_range or total_liquidity <= 0 or liquidity <= 0:
        return 0.0
    return liquidity / total_liquidity * volume * fee_rate


def calculate_v2_position_value(initial_value: float, initial_price: float, price: float) -> float:
    """Value of a 50/50 full-range (constant product) position: V0 × sqrt(P / P0)"""
    if initial_price <= 0 or price <= 0:
        return initial_value
    return initial_value * math.sqrt(price / initial_price)


class PriceTrajectory(ABC):
    """Abstract base class for daily price paths"""

    def __init__(self, initial_price: float):
        self.initial_price = initial_price

    @abstractmethod
    def get_prices(self, days: int) -> np.ndarray:
        """Closing price of days 1..days"""
        pass

    @abstractmethod
    def get_description(self) -> str:
        pass


class ConstantDrift(PriceTrajectory):
    """Price moves by a fixed percentage every day"""

    def __init__(self, initial_price: float, daily_change_pct: float):
        """
        Args:
            initial_price: Price before day 1
            daily_change_pct: Daily change in percent (e.g. -1.0 = -1% per day)
        """
        super().__init__(initial_price)
        self.daily_change_pct = daily_change_pct

    def get_prices(self, days: int) -> np.ndarray:
        factors = np.full(days, 1 + self.daily_change_pct / 100)
        return np.maximum(self.initial_price * np.cumprod(factors), MIN_PRICE)

    def get_description(self) -> str:
        return f"Constant drift: ${self.initial_price:.4f} × (1 {self.daily_change_pct:+.2f}%)^day"


class RandomWalk(PriceTrajectory):
    """Uniform daily returns in [-volatility/2, +volatility/2]"""

    def __init__(self, initial_price: float, volatility: float = 0.06, seed: Optional[int] = None):
        super().__init__(initial_price)
        self.volatility = volatility
        self.seed = seed

    def get_prices(self, days: int) -> np.ndarray:
        rng = np.random.default_rng(self.seed)
        returns = (rng.random(days) - 0.5) * self.volatility
        prices = np.empty(days)
        price = self.initial_price
        for i in range(days):
            price = max(price * (1 + returns[i]), MIN_PRICE)
            prices[i] = price
        return prices

    def get_description(self) -> str:
        return f"Random walk: ${self.initial_price:.4f}, ±{self.volatility / 2:.1%} daily"


class SimulatedPath(PriceTrajectory):
    """
    Replays an existing price series (typically the staking simulation's
    closing prices) and continues with a ±2% random walk if it is too short
    """

    def __init__(self, prices: Sequence[float], initial_price: Optional[float] = None, seed: Optional[int] = None):
        prices = np.asarray(prices, dtype=float)
        if initial_price is None:
            initial_price = float(prices[0]) if len(prices) else 1.0
        super().__init__(initial_price)
        self.prices = prices
        self.seed = seed

    def get_prices(self, days: int) -> np.ndarray:
        if len(self.prices) >= days:
            return self.prices[:days].copy()
        last = float(self.prices[-1]) if len(self.prices) else self.initial_price
        tail = RandomWalk(last, volatility=0.04, seed=self.seed).get_prices(days - len(self.prices))
        return np.concatenate([self.prices, tail])

    def get_description(self) -> str:
        return f"Simulated path: {len(self.prices)} days from ${self.initial_price:.4f}"


@dataclass
class CLMMParams:
    """Position and market parameters for a CLMM replay"""

    deposit_x: float  # tokens
    deposit_y: float  # USDC
    initial_price: float
    price_lower: float
    price_upper: float
    fee_tier: float = 0.003
    daily_volume: float = 10_000.0  # USDC
    total_liquidity: float = 1_000_000.0  # pool-wide L, for the fee share
    days: int = 30
    daily_volumes: Optional[Sequence[float]] = None  # overrides daily_volume per day

    def __post_init__(self):
        if self.price_lower <= 0 or self.price_upper <= self.price_lower:
            raise ValueError(f"Invalid price range [{self.price_lower}, {self.price_upper}]")
        if self.initial_price <= 0:
            raise ValueError("initial_price must be positive")
        if self.days < 1:
            raise ValueError("days must be at least 1")


def run_clmm_simulation(params: CLMMParams, trajectory: PriceTrajectory) -> pd.DataFrame:
    """
    Replay a concentrated liquidity position day by day

    Args:
        params: Position and market parameters
        trajectory: Price path to replay

    Returns:
        DataFrame with one row per day: price, range status, holdings,
        position / HODL value, impermanent loss, fees, net PnL and the
        equivalent full-range (V2) position
    """
    prices = trajectory.get_prices(params.days)
    pa, pb = params.price_lower, params.price_upper

    liquidity = calculate_liquidity(params.deposit_x, params.deposit_y, params.initial_price, pa, pb)
    initial_x, initial_y = calculate_token_amounts(liquidity, params.initial_price, pa, pb)
    v2_initial_value = params.deposit_x * params.initial_price + params.deposit_y

    days = params.days
    token_x = np.zeros(days)
    token_y = np.zeros(days)
    position_value = np.zeros(days)
    hodl_value = np.zeros(days)
    il = np.zeros(days)
    il_pct = np.zeros(days)
    fees = np.zeros(days)
    in_range = np.zeros(days, dtype=bool)
    v2_value = np.zeros(days)
    v2_il = np.zeros(days)

    for i, price in enumerate(prices):
        in_range[i] = pa <= price <= pb
        token_x[i], token_y[i] = calculate_token_amounts(liquidity, price, pa, pb)
        position_value[i] = token_x[i] * price + token_y[i]
        hodl_value[i] = calculate_hodl_value(initial_x, initial_y, price)
        il[i], il_pct[i] = calculate_impermanent_loss(hodl_value[i], position_value[i])

        volume = params.daily_volume
        if params.daily_volumes is not None and i < len(params.daily_volumes):
            volume = params.daily_volumes[i]
        fees[i] = calculate_fee_accrual(liquidity, params.total_liquidity, volume, params.fee_tier, in_range[i])

        v2_value[i] = calculate_v2_position_value(v2_initial_value, params.initial_price, price)
        v2_il[i] = calculate_hodl_value(params.deposit_x, params.deposit_y, price) - v2_value[i]

    cumulative_fees = np.cumsum(fees)
    return pd.DataFrame({
        'day': np.arange(1, days + 1),
        'price': prices,
        'in_range': in_range,
        'token_x': token_x,
        'token_y': token_y,
        'position_value': position_value,
        'hodl_value': hodl_value,
        'impermanent_loss': il,
        'impermanent_loss_pct': il_pct,
        'fees_earned': fees,
        'cumulative_fees': cumulative_fees,
        'net_pnl': cumulative_fees - il,
        'v2_position_value': v2_value,
        'v2_impermanent_loss': v2_il,
    })
